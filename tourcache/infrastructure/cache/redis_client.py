"""
Key-Value Store Handle over redis.asyncio

Architecture:
    KeyValueStore (Public API, one per process, injected)
        ├── connect()          (bounded retries via tenacity, then CONNECTED or UNAVAILABLE)
        ├── _execute()         (single error boundary for every command)
        └── StoreTransaction   (MULTI/EXEC block executed in one round trip)

Failure policy:
    Every transport error is logged at WARNING, moves the handle to UNAVAILABLE
    and is turned into the "store absent" value for that operation (None, 0,
    False, empty list). An error reply from Redis (WRONGTYPE, OOM) only fails
    that one command: it is logged and returns the same absent value, but the
    handle stays CONNECTED. Nothing raised by redis ever reaches the caller.
    There is no background reconnect: only an explicit connect() leaves
    UNAVAILABLE.
"""

import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_incrementing,
)

from tourcache.core.config.constants import CACHE_SCAN_BATCH_SIZE, Stage, StoreState
from tourcache.core.config.settings import Settings, get_settings
from tourcache.core.exceptions import StoreUnavailableError
from tourcache.core.logging.logger import get_logger, log_stage
from tourcache.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")

# Errors worth another connect attempt
RETRYABLE_CONNECT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)

# Errors that mark a connected store unavailable. ResponseError is caught
# before these: an error reply (WRONGTYPE, OOM) proves the store is reachable.
TRANSPORT_ERRORS = (RedisError, OSError)


def _redact_url(url: str | None) -> str | None:
    """Strip the password from a connection URL before it is logged."""
    if not url:
        return url
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    if parts.username:
        netloc = f"{parts.username}:***@{netloc}"
    else:
        netloc = f":***@{netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


# =============================================================================
# TRANSACTION
# Ordered command batch executed atomically with MULTI/EXEC
# =============================================================================


class StoreTransaction:
    """
    Ordered batch of commands executed as one MULTI/EXEC round trip.

    Commands are queued synchronously and return the transaction, so calls
    can be chained. ``execute()`` returns one result per queued command in
    order, or None when the store is unavailable or the transaction failed.

    Usage:
        results = await (
            store.transaction()
            .zremrangebyscore(key, 0, "(1700000000000")
            .zcard(key)
            .zadd(key, {member: now})
            .execute()
        )
    """

    def __init__(self, store: "KeyValueStore", pipeline: Any | None):
        self._store = store
        self._pipeline = pipeline
        self._operations: list[str] = []

    def _queue(self, operation: str, *args, **kwargs) -> "StoreTransaction":
        self._operations.append(operation)
        if self._pipeline is not None:
            getattr(self._pipeline, operation)(*args, **kwargs)
        return self

    def get(self, key: str) -> "StoreTransaction":
        return self._queue("get", key)

    def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> "StoreTransaction":
        return self._queue("set", key, value, ex=ttl_seconds)

    def delete(self, *keys: str) -> "StoreTransaction":
        return self._queue("delete", *keys)

    def zadd(self, key: str, mapping: Mapping[str, float]) -> "StoreTransaction":
        return self._queue("zadd", key, dict(mapping))

    def zremrangebyscore(self, key: str, min_score: float | str, max_score: float | str) -> "StoreTransaction":
        return self._queue("zremrangebyscore", key, min_score, max_score)

    def zcard(self, key: str) -> "StoreTransaction":
        return self._queue("zcard", key)

    def zrange_with_scores(self, key: str, start: int, end: int) -> "StoreTransaction":
        return self._queue("zrange", key, start, end, withscores=True)

    def pexpire(self, key: str, milliseconds: int) -> "StoreTransaction":
        return self._queue("pexpire", key, milliseconds)

    @property
    def operations(self) -> list[str]:
        """Names of the queued commands, in order."""
        return list(self._operations)

    async def execute(self) -> list[Any] | None:
        """Run the queued commands. Returns None when the store could not run them."""
        if self._pipeline is None or not self._operations:
            return None
        return await self._store._execute_transaction(self._pipeline, self._operations)


# =============================================================================
# PUBLIC API
# =============================================================================


class KeyValueStore:
    """
    Async Redis handle with availability tracking.

    STAGE-KV: Key-value store

    The handle is created by the application's startup routine and passed to
    CacheManager and SlidingWindowRateLimiter. Its ``state`` is the single
    availability signal both layers read before touching the store.

    Usage:
        store = KeyValueStore("redis://localhost:6379/0")
        await store.connect()

        await store.set_with_expiry("tour:42", '{"id": 42}', 600)
        value = await store.get("tour:42")

        await store.disconnect()

    Testing:
        Pass ``client=`` to reuse an existing redis.asyncio client (for example
        a fakeredis instance); connect() still pings it before use.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        settings: Settings | None = None,
        client: redis.Redis | None = None,
    ):
        """
        Initialize the handle. No I/O happens until connect().

        STAGE-KV.0: Handle initialization

        Args:
            url: Connection string; defaults to settings.REDIS_URL
            settings: Settings instance (defaults to the global settings)
            client: Pre-built client to use instead of creating one from the URL
        """
        self._settings = settings or get_settings()
        redis_settings = self._settings.redis

        self._url = url if url is not None else redis_settings.REDIS_URL
        self._connect_timeout = redis_settings.REDIS_CONNECT_TIMEOUT
        self._connect_retries = redis_settings.REDIS_CONNECT_RETRIES
        self._backoff_step = redis_settings.REDIS_RETRY_BACKOFF_STEP
        self._backoff_max = redis_settings.REDIS_RETRY_BACKOFF_MAX
        self._socket_timeout = redis_settings.REDIS_SOCKET_TIMEOUT
        self._max_connections = redis_settings.REDIS_MAX_CONNECTIONS

        self._client: redis.Redis | None = client
        self._owns_client = client is None
        self._state = StoreState.DISCONNECTED
        self._last_error: str | None = None
        self._metrics = get_metrics_collector()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def is_enabled(self) -> bool:
        """False when no connection string is configured and no client was injected."""
        return bool(self._url) or not self._owns_client

    @property
    def is_available(self) -> bool:
        return self._state == StoreState.CONNECTED and self._client is not None

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def _set_state(self, state: StoreState) -> None:
        self._state = state
        self._metrics.set_store_available(state == StoreState.CONNECTED)

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Connect and verify with PING.

        STAGE-KV.1: Connection establishment

        Attempts: 1 + REDIS_CONNECT_RETRIES, linear backoff between attempts
        (100ms, 200ms, ... capped at REDIS_RETRY_BACKOFF_MAX), the whole step
        bounded by REDIS_CONNECT_TIMEOUT.

        Returns:
            True when CONNECTED, False when the store is disabled or unreachable.
            Never raises.
        """
        if not self.is_enabled:
            self._set_state(StoreState.UNAVAILABLE)
            log_stage(
                logger,
                Stage.STORE_CONNECT,
                "REDIS_URL not set, caching and rate limiting disabled",
            )
            return False

        if self.is_available:
            return True

        self._set_state(StoreState.CONNECTING)

        try:
            await self._connect_with_retry()
        except StoreUnavailableError as e:
            self._last_error = e.message
            self._set_state(StoreState.UNAVAILABLE)
            log_stage(
                logger,
                Stage.STORE_CONNECT,
                "Key-value store unavailable, continuing without cache and rate limiting",
                level="warning",
                url=_redact_url(self._url),
                **e.details,
            )
            return False

        self._last_error = None
        self._set_state(StoreState.CONNECTED)
        log_stage(
            logger,
            Stage.STORE_CONNECT,
            "Key-value store connected",
            url=_redact_url(self._url),
            max_connections=self._max_connections,
        )
        return True

    def _create_client(self) -> redis.Redis:
        return redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=self._connect_timeout,
            socket_timeout=self._socket_timeout,
            max_connections=self._max_connections,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log_stage(
            logger,
            Stage.STORE_CONNECT,
            "Key-value store connect attempt failed, retrying",
            level="warning",
            attempt=retry_state.attempt_number,
            delay=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(error),
        )

    async def _connect_with_retry(self) -> None:
        """
        Create the client (once) and PING it under the retry policy.

        Raises:
            StoreUnavailableError: Retry budget or time budget exhausted
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(1 + self._connect_retries) | stop_after_delay(self._connect_timeout),
            wait=wait_incrementing(
                start=self._backoff_step, increment=self._backoff_step, max=self._backoff_max
            ),
            retry=retry_if_exception_type(RETRYABLE_CONNECT_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )

        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    if self._client is None:
                        self._client = self._create_client()
                    await self._client.ping()
        except (RedisError, OSError, ValueError) as e:
            await self._release_client()
            raise StoreUnavailableError.from_exception(
                e,
                message=f"Failed to connect to key-value store: {e}",
                attempts=attempts,
            )

    async def _release_client(self) -> None:
        """Close a client this handle created. Injected clients are left alone."""
        if self._client is None or not self._owns_client:
            return
        client, self._client = self._client, None
        try:
            await client.aclose()
        except TRANSPORT_ERRORS as e:
            logger.debug("Ignoring error while closing client", error=str(e))

    async def disconnect(self) -> None:
        """
        Close the connection pool.

        STAGE-KV.4: Connection cleanup
        """
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            except TRANSPORT_ERRORS as e:
                log_stage(
                    logger,
                    Stage.STORE_SHUTDOWN,
                    "Error while closing key-value store",
                    level="warning",
                    error=str(e),
                )
        if self._owns_client:
            self._client = None
        self._set_state(StoreState.DISCONNECTED)
        log_stage(logger, Stage.STORE_SHUTDOWN, "Key-value store disconnected")

    def mark_unavailable(
        self,
        operation: str,
        error: BaseException,
        stage: Stage = Stage.STORE_OPERATION,
        **context,
    ) -> None:
        """
        Move to UNAVAILABLE after a transport error.

        STAGE-KV.2: Degradation
        """
        was_available = self._state == StoreState.CONNECTED
        self._last_error = str(error)
        self._set_state(StoreState.UNAVAILABLE)
        self._metrics.record_store_error(operation)
        log_stage(
            logger,
            stage,
            "Key-value store operation failed, store marked unavailable",
            level="warning",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            was_available=was_available,
            **context,
        )

    # -------------------------------------------------------------------------
    # Error boundary
    # -------------------------------------------------------------------------

    async def _execute(
        self,
        operation: str,
        call: Callable[[redis.Redis], Awaitable[T]],
        default: T,
        **context,
    ) -> T:
        """Run one command; return ``default`` when unavailable or on transport error."""
        if not self.is_available:
            return default
        try:
            return await call(self._client)
        except ResponseError as e:
            self._log_command_error(operation, e, Stage.STORE_OPERATION, **context)
            return default
        except TRANSPORT_ERRORS as e:
            self.mark_unavailable(operation, e, **context)
            return default

    def _log_command_error(self, operation: str, error: ResponseError, stage: Stage, **context) -> None:
        """Log an error reply. The store answered, so its state is unchanged."""
        self._metrics.record_store_error(operation)
        log_stage(
            logger,
            stage,
            "Key-value store rejected command",
            level="warning",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )

    async def _execute_transaction(self, pipeline: Any, operations: list[str]) -> list[Any] | None:
        """
        Execute a queued MULTI/EXEC block.

        STAGE-KV.3: Transaction execution
        """
        if not self.is_available:
            return None
        try:
            return await pipeline.execute()
        except ResponseError as e:
            self._log_command_error("transaction", e, Stage.STORE_TRANSACTION, operations=operations)
            return None
        except TRANSPORT_ERRORS as e:
            self.mark_unavailable("transaction", e, stage=Stage.STORE_TRANSACTION, operations=operations)
            return None

    # -------------------------------------------------------------------------
    # Basic operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Get a value. None when absent or when the store is unavailable."""
        return await self._execute("get", lambda c: c.get(key), None, key=key)

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> bool:
        """SET key value EX ttl. False when the write did not happen."""
        result = await self._execute(
            "set", lambda c: c.set(key, value, ex=ttl_seconds), None, key=key
        )
        return bool(result)

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns the number removed (0 when unavailable)."""
        if not keys:
            return 0
        return await self._execute("delete", lambda c: c.delete(*keys), 0, keys=list(keys))

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-2 when absent or unavailable)."""
        return await self._execute("ttl", lambda c: c.ttl(key), -2, key=key)

    async def scan_by_pattern(self, pattern: str, count: int = CACHE_SCAN_BATCH_SIZE) -> list[str]:
        """
        Collect every key matching ``pattern`` with cursor-based SCAN.

        Each round asks for at most ``count`` keys, so the store is never
        blocked by a single unbounded KEYS call. SCAN may return a key more
        than once; duplicates are dropped.
        """

        async def _scan(client: redis.Redis) -> list[str]:
            found: dict[str, None] = {}
            cursor = 0
            while True:
                cursor, batch = await client.scan(cursor=cursor, match=pattern, count=count)
                for key in batch:
                    found[key] = None
                if int(cursor) == 0:
                    return list(found)

        return await self._execute("scan", _scan, [], pattern=pattern)

    # -------------------------------------------------------------------------
    # Sorted-set operations (sliding windows)
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        """Add members with scores. Returns the number of new members."""
        return await self._execute("zadd", lambda c: c.zadd(key, dict(mapping)), 0, key=key)

    async def zremrangebyscore(self, key: str, min_score: float | str, max_score: float | str) -> int:
        return await self._execute(
            "zremrangebyscore",
            lambda c: c.zremrangebyscore(key, min_score, max_score),
            0,
            key=key,
        )

    async def zcard(self, key: str) -> int:
        return await self._execute("zcard", lambda c: c.zcard(key), 0, key=key)

    async def zrange_with_scores(self, key: str, start: int, end: int) -> list[tuple[str, float]]:
        return await self._execute(
            "zrange", lambda c: c.zrange(key, start, end, withscores=True), [], key=key
        )

    async def pexpire(self, key: str, milliseconds: int) -> bool:
        result = await self._execute(
            "pexpire", lambda c: c.pexpire(key, milliseconds), False, key=key
        )
        return bool(result)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def transaction(self) -> StoreTransaction:
        """
        Start a MULTI/EXEC batch.

        When the store is unavailable the returned transaction queues nothing
        and ``execute()`` returns None.
        """
        pipeline = self._client.pipeline(transaction=True) if self.is_available else None
        return StoreTransaction(self, pipeline)

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        """PING the store. A failed ping marks the handle unavailable."""
        result = await self._execute("ping", lambda c: c.ping(), False)
        return bool(result)

    async def health_check(self) -> dict[str, Any]:
        """
        Report store health.

        Status is ``healthy`` when connected and answering PING, ``disabled``
        when no URL is configured, and ``degraded`` otherwise.
        """
        health: dict[str, Any] = {
            "status": "healthy",
            "state": self._state.value,
            "enabled": self.is_enabled,
            "ping_latency_ms": None,
        }

        if not self.is_enabled:
            health["status"] = "disabled"
            return health

        if not self.is_available:
            health["status"] = "degraded"
            health["error"] = self._last_error
            return health

        start = time.perf_counter()
        if await self.ping():
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        else:
            health["status"] = "degraded"
            health["state"] = self._state.value
            health["error"] = self._last_error

        return health
