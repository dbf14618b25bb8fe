"""서비스 구현체 패키지"""

from .cache_store import CacheEntry, CacheStore

__all__ = ["CacheEntry", "CacheStore"]
