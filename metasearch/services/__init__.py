"""비즈니스 로직 서비스 - export only."""

from .impl import CacheEntry, CacheStore

__all__ = ["CacheEntry", "CacheStore"]
