"""Model streaming, prompts, and shared answer helpers."""

from .streaming import StreamPart, ToolDefinition, stream_text

__all__ = ["StreamPart", "ToolDefinition", "stream_text"]
