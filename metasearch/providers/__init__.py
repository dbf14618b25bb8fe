"""Provider layer - adapter contract and shared outbound HTTP transport."""

from .base import ProviderAdapter, ProviderCall, RawItem
from .http_client import (
    SharedHttpClient,
    fetch_with_retry,
    get_shared_http_client,
    parse_retry_after,
    shutdown_shared_http_client,
)

__all__ = [
    "ProviderAdapter",
    "ProviderCall",
    "RawItem",
    "SharedHttpClient",
    "fetch_with_retry",
    "get_shared_http_client",
    "parse_retry_after",
    "shutdown_shared_http_client",
]
