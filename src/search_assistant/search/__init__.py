"""Search engine backends."""

from .engine import SearchEngine, SearchEngineError, SearxngSearchEngine, get_search_engine

__all__ = ["SearchEngine", "SearchEngineError", "SearxngSearchEngine", "get_search_engine"]
