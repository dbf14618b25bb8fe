"""Schema package - export only."""

from .result_schema import CacheStats, Category, ProviderError, ResultItem, SearchOptions

__all__ = ["CacheStats", "Category", "ProviderError", "ResultItem", "SearchOptions"]
