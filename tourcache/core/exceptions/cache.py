"""
Cache-Related Exceptions

Exceptions raised inside the key-value store and cache manager. None of these
escape a cache operation to the caller: they are caught at the seam and turned
into a degraded result plus a warning log.
"""

from tourcache.core.exceptions.base import TourCacheError


class CacheError(TourCacheError):
    """Base exception for cache-related errors."""
    pass


class StoreUnavailableError(CacheError):
    """
    Raised when the key-value store cannot be reached.

    Common causes:
    - Redis server is down or restarting
    - Network connectivity issues
    - Connect retries exhausted
    """
    pass


class CacheSerializationError(CacheError):
    """
    Raised when a value cannot be encoded to or decoded from JSON.

    A stored value that fails to decode is treated as a cache miss.
    """
    pass
