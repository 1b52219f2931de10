#!/usr/bin/env python3
"""
Read-Through Cache Manager

Architecture:
    CacheManager (Public API)
        ├── KeyValueStore   (injected handle, availability source)
        ├── CacheSerializer (orjson encode/decode)
        ├── CacheObserver   (counters, metrics and logging)
        └── CacheWarmer     (concurrent pre-population)

Read path (get_or_compute):
    store unavailable -> fetcher, nothing cached
    hit               -> decoded value, fetcher not called
    miss / bad value  -> fetcher, then background write-back

Fetcher errors propagate to the caller untouched and nothing is cached for
them. Store and serialization failures never propagate: they are logged and
the call behaves as if caching were switched off.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

import orjson
from pydantic import BaseModel

from tourcache.core.config.constants import CACHE_WRITE_DRAIN_TIMEOUT, Stage
from tourcache.core.config.settings import Settings, get_settings
from tourcache.core.exceptions import CacheSerializationError
from tourcache.core.logging.logger import get_logger, log_stage
from tourcache.infrastructure.cache.cache_keys import TOUR_KEYSPACE, CacheKeys, EntityKeySpace
from tourcache.infrastructure.cache.redis_client import KeyValueStore
from tourcache.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")

Fetcher = Callable[[], T | Awaitable[T]]


async def _call_fetcher(fetcher: Fetcher) -> Any:
    """Call a sync or async fetcher and return its value."""
    result = fetcher()
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True)
class WarmEntry:
    """One key to pre-populate: where to store it, how to compute it, for how long."""

    key: str
    fetcher: Fetcher
    ttl: int | None = None


# =============================================================================
# LAYER 1: SERIALIZATION
# =============================================================================


class CacheSerializer:
    """
    JSON codec for cached values.

    Pydantic models are stored as their JSON-mode dump. ``None`` is a valid
    cached value (stored as ``null``), which is distinct from an absent key.
    """

    @staticmethod
    def _default(obj: Any) -> Any:
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")

    def encode(self, value: Any) -> str:
        try:
            return orjson.dumps(value, default=self._default).decode("utf-8")
        except TypeError as e:
            raise CacheSerializationError.from_exception(
                e, message=f"Cannot encode value of type {type(value).__name__}"
            )

    def decode(self, raw: str | bytes) -> Any:
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise CacheSerializationError.from_exception(e, message="Stored value is not valid JSON")


# =============================================================================
# LAYER 2: OBSERVABILITY
# =============================================================================


class CacheObserver:
    """
    Tracks cache counters and logs operations.

    Local counters back ``CacheManager.stats()``; the same events are
    mirrored into the process-wide Prometheus counters.
    """

    def __init__(self, logger_instance=None):
        self._logger = logger_instance or logger
        self._metrics = get_metrics_collector()

        self._hits = 0
        self._misses = 0
        self._bypassed = 0
        self._writes = 0
        self._write_failures = 0
        self._serialization_failures = 0
        self._invalidated_keys = 0

    def record_hit(self, key: str) -> None:
        self._hits += 1
        self._metrics.record_cache_hit()
        log_stage(self._logger, Stage.CACHE_LOOKUP, "Cache hit", level="debug", cache_key=key)

    def record_miss(self, key: str) -> None:
        self._misses += 1
        self._metrics.record_cache_miss()
        log_stage(self._logger, Stage.CACHE_LOOKUP, "Cache miss", level="debug", cache_key=key)

    def record_bypass(self, key: str) -> None:
        """Lookup skipped because the store is unavailable or caching is off."""
        self._bypassed += 1
        self._metrics.record_cache_miss()
        log_stage(
            self._logger,
            Stage.CACHE_COMPUTE,
            "Cache bypassed, calling fetcher directly",
            level="debug",
            cache_key=key,
        )

    def record_write(self, key: str, success: bool, ttl: int) -> None:
        self._metrics.record_cache_write(success)
        if success:
            self._writes += 1
            log_stage(
                self._logger, Stage.CACHE_WRITE_BACK, "Cache set", level="debug", cache_key=key, ttl=ttl
            )
        else:
            self._write_failures += 1
            log_stage(
                self._logger,
                Stage.CACHE_WRITE_BACK,
                "Cache write failed",
                level="warning",
                operation="set",
                cache_key=key,
            )

    def record_write_error(self, key: str, error: BaseException) -> None:
        self._write_failures += 1
        self._metrics.record_cache_write(False)
        log_stage(
            self._logger,
            Stage.CACHE_WRITE_BACK,
            "Background cache write raised",
            level="warning",
            operation="set",
            cache_key=key,
            error=str(error),
            error_type=type(error).__name__,
        )

    def record_serialization_failure(self, key: str, direction: str, error: CacheSerializationError) -> None:
        self._serialization_failures += 1
        self._metrics.record_serialization_failure(direction)
        if direction == "decode":
            self._misses += 1
            self._metrics.record_cache_miss()
        log_stage(
            self._logger,
            Stage.CACHE_LOOKUP if direction == "decode" else Stage.CACHE_WRITE_BACK,
            "Cache value could not be serialized" if direction == "encode"
            else "Cached value could not be decoded, treating as miss",
            level="warning",
            operation=direction,
            cache_key=key,
            error=error.message,
        )

    def record_invalidation(self, deleted: int, **context) -> None:
        self._invalidated_keys += deleted
        self._metrics.record_invalidated_keys(deleted)
        log_stage(
            self._logger, Stage.CACHE_INVALIDATION, "Cache invalidated", deleted=deleted, **context
        )

    def get_stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        hit_rate = self._hits / lookups if lookups > 0 else 0.0

        return {
            "hits": self._hits,
            "misses": self._misses,
            "bypassed": self._bypassed,
            "total_lookups": lookups,
            "hit_rate": round(hit_rate, 3),
            "writes": self._writes,
            "write_failures": self._write_failures,
            "serialization_failures": self._serialization_failures,
            "invalidated_keys": self._invalidated_keys,
        }


# =============================================================================
# LAYER 3: CACHE WARMING
# =============================================================================


class CacheWarmer:
    """
    Pre-populates keys concurrently.

    Each entry runs in its own coroutine under ``asyncio.gather`` with
    ``return_exceptions=True``, so a failing fetcher only costs its own key.
    """

    def __init__(self, manager: "CacheManager"):
        self._manager = manager

    async def _warm_one(self, entry: WarmEntry) -> bool:
        value = await _call_fetcher(entry.fetcher)
        return await self._manager.set(entry.key, value, entry.ttl)

    async def warm(self, entries: Sequence[WarmEntry]) -> int:
        """
        Compute and store every entry.

        Returns:
            Number of entries that were written
        """
        if not entries:
            return 0

        if not self._manager.is_available:
            log_stage(
                logger,
                Stage.CACHE_WARMING,
                "Cache warming skipped, store unavailable",
                level="warning",
                entries=len(entries),
            )
            return 0

        results = await asyncio.gather(
            *(self._warm_one(entry) for entry in entries), return_exceptions=True
        )

        warmed = 0
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                log_stage(
                    logger,
                    Stage.CACHE_WARMING,
                    "Cache warming fetcher failed",
                    level="warning",
                    cache_key=entry.key,
                    error=str(result),
                    error_type=type(result).__name__,
                )
            elif result:
                warmed += 1

        log_stage(
            logger, Stage.CACHE_WARMING, "Cache warming complete", warmed=warmed, requested=len(entries)
        )
        return warmed


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class CacheManager:
    """
    Read-through cache over an injected KeyValueStore.

    Usage:
        store = KeyValueStore(settings.REDIS_URL)
        await store.connect()
        cache = CacheManager(store)

        tour = await cache.get_or_compute(
            CacheKeys.tour(42), lambda: repository.get_tour(42), ttl=600
        )

        # after a write commits
        await cache.invalidate_entity_caches("42", [CacheKeys.tour_by_slug("gobi-tour")])
    """

    def __init__(self, store: KeyValueStore, settings: Settings | None = None):
        """
        Initialize cache manager.

        STAGE-C.0: Cache manager initialization
        """
        settings = settings or get_settings()

        self._store = store
        self._serializer = CacheSerializer()
        self._observer = CacheObserver()
        self._warmer = CacheWarmer(self)

        self._enabled = settings.cache.CACHE_ENABLED
        self._default_ttl = settings.cache.CACHE_DEFAULT_TTL
        self._scan_batch_size = settings.cache.CACHE_SCAN_BATCH_SIZE

        # Strong references keep background writes alive until they finish
        self._pending_writes: set[asyncio.Task] = set()

        logger.info(
            "Cache manager initialized",
            stage="C.0",
            caching_enabled=self._enabled,
            default_ttl=self._default_ttl,
        )

    @property
    def is_available(self) -> bool:
        """True when caching is enabled and the store is connected."""
        return self._enabled and self._store.is_available

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    def _resolve_ttl(self, ttl: int | None) -> int:
        if ttl is None:
            return self._default_ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be a positive number of seconds, got {ttl}")
        return ttl

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    async def get_or_compute(self, key: str, fetcher: Fetcher, ttl: int | None = None) -> Any:
        """
        Return the cached value for ``key``, computing and caching it on a miss.

        STAGE-C.1: Cache lookup
        STAGE-C.2: Compute on miss
        STAGE-C.3: Background write-back

        Args:
            key: Cache key
            fetcher: Sync or async callable producing the value
            ttl: Time-to-live in seconds (default CACHE_DEFAULT_TTL)

        Returns:
            Cached or freshly computed value

        Raises:
            Whatever ``fetcher`` raises, unchanged
        """
        ttl = self._resolve_ttl(ttl)

        if not self.is_available:
            self._observer.record_bypass(key)
            return await _call_fetcher(fetcher)

        raw = await self._store.get(key)
        if raw is None:
            self._observer.record_miss(key)
        else:
            try:
                value = self._serializer.decode(raw)
            except CacheSerializationError as e:
                self._observer.record_serialization_failure(key, "decode", e)
            else:
                self._observer.record_hit(key)
                return value

        value = await _call_fetcher(fetcher)
        if self.is_available:
            self._schedule_write(key, value, ttl)
        return value

    async def get(self, key: str) -> Any | None:
        """Decoded value, or None on miss, decode failure or unavailable store."""
        if not self.is_available:
            return None

        raw = await self._store.get(key)
        if raw is None:
            self._observer.record_miss(key)
            return None
        try:
            value = self._serializer.decode(raw)
        except CacheSerializationError as e:
            self._observer.record_serialization_failure(key, "decode", e)
            return None
        self._observer.record_hit(key)
        return value

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Write-through set.

        Returns:
            True if the value was stored, False when it could not be
        """
        ttl = self._resolve_ttl(ttl)
        if not self.is_available:
            return False

        try:
            payload = self._serializer.encode(value)
        except CacheSerializationError as e:
            self._observer.record_serialization_failure(key, "encode", e)
            return False

        stored = await self._store.set_with_expiry(key, payload, ttl)
        self._observer.record_write(key, stored, ttl)
        return stored

    def _schedule_write(self, key: str, value: Any, ttl: int) -> None:
        """Encode now, store in a detached task. The caller never awaits it."""
        try:
            payload = self._serializer.encode(value)
        except CacheSerializationError as e:
            self._observer.record_serialization_failure(key, "encode", e)
            return

        task = asyncio.create_task(self._write_back(key, payload, ttl))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_back(self, key: str, payload: str, ttl: int) -> None:
        try:
            stored = await self._store.set_with_expiry(key, payload, ttl)
        except Exception as e:
            self._observer.record_write_error(key, e)
            return
        self._observer.record_write(key, stored, ttl)

    async def flush_pending_writes(self, timeout: float = CACHE_WRITE_DRAIN_TIMEOUT) -> int:
        """
        Wait for in-flight background writes.

        Used on shutdown and in tests. Writes still running after ``timeout``
        are left alone and reported in the log.

        Returns:
            Number of writes that finished within the timeout
        """
        if not self._pending_writes:
            return 0

        done, pending = await asyncio.wait(set(self._pending_writes), timeout=timeout)
        if pending:
            log_stage(
                logger,
                Stage.CACHE_WRITE_BACK,
                "Background cache writes still pending after drain timeout",
                level="warning",
                pending=len(pending),
                timeout=timeout,
            )
        return len(done)

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    async def invalidate(self, key: str) -> int:
        """
        Delete one key. Deleting an absent key is a no-op.

        STAGE-C.4: Cache invalidation
        """
        deleted = await self._store.delete(key)
        self._observer.record_invalidation(deleted, cache_key=key)
        return deleted

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Keys are collected with cursor-based SCAN in batches of
        CACHE_SCAN_BATCH_SIZE, then removed in one MULTI/EXEC round trip.

        Returns:
            Number of keys deleted
        """
        keys = await self._store.scan_by_pattern(pattern, count=self._scan_batch_size)
        if not keys:
            self._observer.record_invalidation(0, pattern=pattern)
            return 0

        transaction = self._store.transaction()
        for start in range(0, len(keys), self._scan_batch_size):
            transaction.delete(*keys[start:start + self._scan_batch_size])
        results = await transaction.execute()

        deleted = sum(results) if results else 0
        self._observer.record_invalidation(deleted, pattern=pattern, matched=len(keys))
        return deleted

    async def invalidate_entity_caches(
        self,
        entity_id: str | int,
        related_keys: Iterable[str] = (),
        keyspace: EntityKeySpace = TOUR_KEYSPACE,
    ) -> int:
        """
        Invalidate everything that may hold a view of one entity.

        Deletes the entity's direct key, the caller's related keys and the
        keyspace's aggregate keys, then every listing matched by the
        keyspace's list pattern. Listings are cleared wholesale because the
        pages an entity appears on are not tracked.

        Returns:
            Total number of keys deleted
        """
        keys = keyspace.keys_for(entity_id, tuple(related_keys))
        deleted = await self._store.delete(*keys)
        self._observer.record_invalidation(
            deleted, entity=keyspace.name, entity_id=str(entity_id), keys=keys
        )

        if keyspace.list_pattern:
            deleted += await self.invalidate_pattern(keyspace.list_pattern)
        return deleted

    async def invalidate_tour_caches(
        self,
        tour_id: str | int | None = None,
        slug: str | None = None,
        category_id: str | int | None = None,
    ) -> int:
        """
        Invalidate tour views after a tour is created, updated or deleted.

        Always clears the featured list and every paginated listing.
        """
        keys = []
        if tour_id is not None:
            keys.append(CacheKeys.tour(tour_id))
        if slug:
            keys.append(CacheKeys.tour_by_slug(slug))
        if category_id is not None:
            keys.append(CacheKeys.tours_by_category(category_id))
        keys.append(CacheKeys.tours_featured())

        deleted = await self._store.delete(*keys)
        self._observer.record_invalidation(deleted, entity="tour", keys=keys)

        deleted += await self.invalidate_pattern(CacheKeys.tours_list_pattern())
        return deleted

    # -------------------------------------------------------------------------
    # Warming
    # -------------------------------------------------------------------------

    async def warm(self, entries: Sequence[WarmEntry]) -> int:
        """
        Pre-populate keys concurrently.

        STAGE-C.5: Cache warming

        Returns:
            Number of entries written
        """
        return await self._warmer.warm(entries)

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        return {
            **self._observer.get_stats(),
            "caching_enabled": self._enabled,
            "store_state": self._store.state.value,
            "pending_writes": self.pending_writes,
            "default_ttl": self._default_ttl,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    async def health_check(self) -> dict[str, Any]:
        """
        Cache health.

        A missing or failed store is ``degraded``, never an error: the
        service keeps answering by calling fetchers directly.
        """
        store_health = await self._store.health_check()
        status = "healthy"
        if not self._enabled:
            status = "disabled"
        elif store_health["status"] != "healthy":
            status = "degraded"

        return {
            "status": status,
            "caching_enabled": self._enabled,
            "store": store_health,
        }
