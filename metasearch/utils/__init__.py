"""Utilities package - Flat structure (no nested directories)"""

# Hash utilities
from .hash_utils import hash_string, generate_cache_key

# URL utilities
from .url_utils import extract_display_domain, is_http_url

# Text utilities
from .text import SafeSearchLevel, normalize_query, normalize_safe_search

__all__ = [
    # hash
    "hash_string",
    "generate_cache_key",
    # url
    "extract_display_domain",
    "is_http_url",
    # text
    "SafeSearchLevel",
    "normalize_query",
    "normalize_safe_search",
]
