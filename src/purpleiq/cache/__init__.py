"""PurpleIQ response cache and in-flight request de-duplication."""

from purpleiq.cache.inflight import InFlightRequest, ResponseCoordinator
from purpleiq.cache.keys import make_cache_key, normalize_message
from purpleiq.cache.response_cache import CacheEntry, ResponseCache

__all__ = [
    "CacheEntry",
    "InFlightRequest",
    "ResponseCache",
    "ResponseCoordinator",
    "make_cache_key",
    "normalize_message",
]
