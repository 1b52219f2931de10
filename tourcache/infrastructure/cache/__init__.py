"""
Cache Module

Read-through caching over a fail-open Redis handle.
"""

from .cache_keys import KEYSPACES, TOUR_KEYSPACE, CacheKeys, EntityKeySpace
from .cache_manager import CacheManager, CacheSerializer, WarmEntry
from .redis_client import KeyValueStore, StoreTransaction

__all__ = [
    "CacheKeys",
    "CacheManager",
    "CacheSerializer",
    "EntityKeySpace",
    "KEYSPACES",
    "KeyValueStore",
    "StoreTransaction",
    "TOUR_KEYSPACE",
    "WarmEntry",
]
