"""Tools and answer stages invoked during a chat turn."""
