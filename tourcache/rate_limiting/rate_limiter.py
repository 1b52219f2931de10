"""
Sliding Window Rate Limiter

Counts requests per identifier and endpoint in a Redis sorted set, one member
per request scored by its arrival time in milliseconds.

Algorithm (one MULTI/EXEC round trip per check):
1. ZREMRANGEBYSCORE drops members older than ``now - window_ms``
2. ZCARD reads how many requests are still inside the window
3. ZADD records this request as ``<now>-<nonce>`` scored ``now``
4. PEXPIRE lets an idle window delete itself after ``window_ms``
5. ZRANGE 0 0 WITHSCORES reads the oldest surviving member for Retry-After

The count from step 2 is taken before this request is added, so a request is
rejected when that count already reached ``max_requests``. Rejected requests
are still recorded and keep counting against the window.

Fail-open: if the store is disabled, unavailable or the transaction fails,
every check is admitted with the full quota remaining.
"""

import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from uuid import uuid4

from tourcache.core.config.constants import RateLimitTierName, Stage
from tourcache.core.config.settings import Settings, get_settings
from tourcache.core.exceptions import ConfigurationError
from tourcache.core.logging import get_logger, log_stage
from tourcache.infrastructure.cache.redis_client import KeyValueStore
from tourcache.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class RateLimitTier:
    """Window length and request quota for one class of caller."""

    name: str
    window_ms: int
    max_requests: int

    def __post_init__(self):
        if self.window_ms <= 0:
            raise ConfigurationError(
                f"Rate limit tier {self.name} needs a positive window",
                details={"window_ms": self.window_ms},
            )
        if self.max_requests <= 0:
            raise ConfigurationError(
                f"Rate limit tier {self.name} needs a positive request quota",
                details={"max_requests": self.max_requests},
            )


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of one check.

    Attributes:
        admitted: Whether the request may proceed
        remaining: Requests left in the window after this one (0 when rejected)
        reset_at: Unix seconds at which a fresh full window would end
        limit: The tier's quota
        retry_after: Seconds to wait before retrying (rejections only)
    """

    admitted: bool
    remaining: int
    reset_at: int
    limit: int
    retry_after: int | None = None


def build_tiers(settings: Settings | None = None) -> Mapping[RateLimitTierName, RateLimitTier]:
    """Build the read-only tier table from settings (defaults plus env overrides)."""
    settings = settings or get_settings()
    tiers = {
        name: RateLimitTier(name=name.value, window_ms=window_ms, max_requests=max_requests)
        for name, (window_ms, max_requests) in settings.rate_limit.tier_limits().items()
    }
    return MappingProxyType(tiers)


class SlidingWindowRateLimiter:
    """
    Per-identifier, per-endpoint sliding window limiter over a KeyValueStore.

    STAGE-RL: Rate limiting

    Usage:
        limiter = SlidingWindowRateLimiter(store)
        result = await limiter.check("ip:1.2.3.4", "login", RateLimitTierName.SENSITIVE)
        if not result.admitted:
            return build_rate_limit_response(result)

    Testing:
        Pass ``clock=`` (a callable returning epoch milliseconds) to move time
        without sleeping.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings | None = None,
        clock: Callable[[], int] | None = None,
        tiers: Mapping[RateLimitTierName, RateLimitTier] | None = None,
    ):
        settings = settings or get_settings()

        self._store = store
        self._clock = clock or _now_ms
        self._enabled = settings.rate_limit.RATE_LIMIT_ENABLED
        self._key_prefix = settings.rate_limit.RATE_LIMIT_KEY_PREFIX
        self._tiers = tiers if tiers is not None else build_tiers(settings)
        self._metrics = get_metrics_collector()

        logger.info(
            "Rate limiter initialized",
            stage="RL.0",
            rate_limiting_enabled=self._enabled,
            tiers={name.value: (t.window_ms, t.max_requests) for name, t in self._tiers.items()},
        )

    @property
    def tiers(self) -> Mapping[RateLimitTierName, RateLimitTier]:
        return self._tiers

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def is_available(self) -> bool:
        return self._enabled and self._store.is_available

    def get_tier(self, tier: RateLimitTier | RateLimitTierName | str) -> RateLimitTier:
        """
        Resolve a tier given as a record, an enum member or a name.

        Raises:
            ConfigurationError: Unknown tier name
        """
        if isinstance(tier, RateLimitTier):
            return tier
        try:
            return self._tiers[RateLimitTierName(tier)]
        except (KeyError, ValueError):
            raise ConfigurationError(
                f"Unknown rate limit tier: {tier}",
                details={"known_tiers": [name.value for name in self._tiers]},
            )

    def window_key(self, identifier: str, endpoint: str) -> str:
        return f"{self._key_prefix}:{endpoint}:{identifier}"

    def _fail_open(self, tier: RateLimitTier, now: int) -> RateLimitResult:
        self._metrics.record_rate_limit_decision(tier.name, "fail_open")
        return RateLimitResult(
            admitted=True,
            remaining=tier.max_requests,
            reset_at=math.ceil((now + tier.window_ms) / 1000),
            limit=tier.max_requests,
        )

    async def check(
        self,
        identifier: str,
        endpoint: str,
        tier: RateLimitTier | RateLimitTierName | str,
    ) -> RateLimitResult:
        """
        Count this request and decide whether it is admitted.

        STAGE-RL.1: Rate limit check

        Args:
            identifier: ``user:<id>`` or ``ip:<address>``
            endpoint: Logical operation name (not the URL path)
            tier: Tier record, enum member or tier name

        Returns:
            RateLimitResult (never raises on store failure)
        """
        tier = self.get_tier(tier)
        now = self._clock()

        if not self.is_available:
            return self._fail_open(tier, now)

        key = self.window_key(identifier, endpoint)
        window_start = now - tier.window_ms
        member = f"{now}-{uuid4().hex[:12]}"

        results = await (
            self._store.transaction()
            .zremrangebyscore(key, "-inf", f"({window_start}")
            .zcard(key)
            .zadd(key, {member: now})
            .pexpire(key, tier.window_ms)
            .zrange_with_scores(key, 0, 0)
            .execute()
        )

        if results is None:
            log_stage(
                logger,
                Stage.RATE_LIMIT_CHECK,
                "Rate limit transaction failed, allowing request",
                level="warning",
                operation="rate_limit_check",
                key=key,
            )
            return self._fail_open(tier, now)

        request_count = int(results[1] or 0)
        reset_at = math.ceil((now + tier.window_ms) / 1000)

        if request_count >= tier.max_requests:
            oldest_entries = results[4] or []
            oldest = int(oldest_entries[0][1]) if oldest_entries else now
            retry_after = max(1, math.ceil((oldest + tier.window_ms - now) / 1000))

            self._metrics.record_rate_limit_decision(tier.name, "rejected")
            log_stage(
                logger,
                Stage.RATE_LIMIT_REJECT,
                "Rate limit exceeded",
                identifier=identifier,
                endpoint=endpoint,
                tier=tier.name,
                request_count=request_count,
                retry_after=retry_after,
            )
            return RateLimitResult(
                admitted=False,
                remaining=0,
                reset_at=reset_at,
                limit=tier.max_requests,
                retry_after=retry_after,
            )

        self._metrics.record_rate_limit_decision(tier.name, "admitted")
        return RateLimitResult(
            admitted=True,
            remaining=max(0, tier.max_requests - request_count - 1),
            reset_at=reset_at,
            limit=tier.max_requests,
        )

    async def reset(self, identifier: str, endpoint: str) -> bool:
        """
        Clear one window (admin action).

        Returns:
            True if a window existed and was deleted
        """
        deleted = await self._store.delete(self.window_key(identifier, endpoint))
        log_stage(
            logger,
            Stage.RATE_LIMIT_CHECK,
            "Rate limit window reset",
            identifier=identifier,
            endpoint=endpoint,
            deleted=deleted,
        )
        return deleted > 0
