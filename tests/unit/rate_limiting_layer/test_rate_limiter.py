"""
Unit Tests for SlidingWindowRateLimiter

Time is driven by FakeClock, so window boundaries are exact and no test sleeps.
"""

import asyncio

import pytest

from tests.test_fixtures import CacheTestFactory
from tourcache.core.config.constants import RateLimitTierName
from tourcache.core.config.settings import Settings
from tourcache.core.exceptions import ConfigurationError
from tourcache.infrastructure.cache.redis_client import KeyValueStore
from tourcache.rate_limiting.rate_limiter import (
    RateLimitTier,
    SlidingWindowRateLimiter,
    build_tiers,
)

PUBLIC = RateLimitTierName.PUBLIC
SENSITIVE = RateLimitTierName.SENSITIVE


@pytest.mark.unit
class TestTiers:

    def test_default_tiers(self, test_settings):
        tiers = build_tiers(test_settings)

        assert tiers[PUBLIC] == RateLimitTier("PUBLIC", 60_000, 30)
        assert tiers[RateLimitTierName.AUTHENTICATED].max_requests == 100
        assert tiers[RateLimitTierName.ADMIN].max_requests == 200
        assert tiers[SENSITIVE] == RateLimitTier("SENSITIVE", 900_000, 5)
        assert tiers[RateLimitTierName.HEAVY].max_requests == 10

    def test_tier_overrides_from_settings(self):
        settings = Settings(RATE_LIMIT_PUBLIC_MAX_REQUESTS=3, RATE_LIMIT_PUBLIC_WINDOW_MS=1000)

        assert build_tiers(settings)[PUBLIC] == RateLimitTier("PUBLIC", 1000, 3)

    def test_tier_table_is_read_only(self, test_settings):
        tiers = build_tiers(test_settings)

        with pytest.raises(TypeError):
            tiers[PUBLIC] = RateLimitTier("PUBLIC", 1, 1)

    @pytest.mark.parametrize("window_ms, max_requests", [(0, 5), (1000, 0), (-1, 5)])
    def test_non_positive_tier_is_rejected(self, window_ms, max_requests):
        with pytest.raises(ConfigurationError):
            RateLimitTier("BROKEN", window_ms, max_requests)

    def test_tier_lookup_accepts_names(self, rate_limiter):
        assert rate_limiter.get_tier("SENSITIVE").max_requests == 5
        assert rate_limiter.get_tier(SENSITIVE).window_ms == 900_000

        custom = RateLimitTier("CUSTOM", 1000, 1)
        assert rate_limiter.get_tier(custom) is custom

    def test_unknown_tier_name_is_a_configuration_error(self, rate_limiter):
        with pytest.raises(ConfigurationError):
            rate_limiter.get_tier("PLATINUM")


@pytest.mark.unit
class TestSlidingWindow:

    async def test_first_request_is_admitted(self, rate_limiter, clock):
        result = await rate_limiter.check("ip:1.2.3.4", "tours", PUBLIC)

        assert result.admitted is True
        assert result.remaining == 29
        assert result.limit == 30
        assert result.retry_after is None
        assert result.reset_at == (clock.now_ms + 60_000) // 1000

    async def test_window_boundary(self, rate_limiter, clock):
        """30 admits, the 31st rejects, a fresh window admits again."""
        first_call_at = clock.now_ms
        for i in range(30):
            result = await rate_limiter.check("ip:1.2.3.4", "tours", PUBLIC)
            assert result.admitted, f"request {i + 1} should be admitted"
            assert result.remaining == 29 - i

        clock.advance(500)
        rejected = await rate_limiter.check("ip:1.2.3.4", "tours", PUBLIC)
        assert rejected.admitted is False
        assert rejected.remaining == 0
        assert rejected.retry_after == 60

        # past the window for every request above, the rejected one included
        clock.now_ms = first_call_at + 60_000 + 501
        admitted = await rate_limiter.check("ip:1.2.3.4", "tours", PUBLIC)
        assert admitted.admitted is True
        assert admitted.remaining == 29

    async def test_retry_after_counts_down_to_oldest_expiry(self, store, test_settings, clock):
        tier = RateLimitTier("TEST", 10_000, 2)
        limiter = SlidingWindowRateLimiter(store, settings=test_settings, clock=clock)

        await limiter.check("ip:a", "search", tier)
        clock.advance(4_000)
        await limiter.check("ip:a", "search", tier)
        clock.advance(1_000)

        rejected = await limiter.check("ip:a", "search", tier)

        # oldest request was 5s ago in a 10s window
        assert rejected.retry_after == 5

    async def test_rejected_requests_keep_counting(self, store, test_settings, clock):
        tier = RateLimitTier("TEST", 10_000, 1)
        limiter = SlidingWindowRateLimiter(store, settings=test_settings, clock=clock)

        await limiter.check("ip:a", "search", tier)
        clock.advance(9_000)
        assert (await limiter.check("ip:a", "search", tier)).admitted is False

        # the first request has left the window, the rejected one has not
        clock.advance(2_000)
        assert (await limiter.check("ip:a", "search", tier)).admitted is False

    async def test_identifiers_and_endpoints_are_independent(self, store, test_settings, clock):
        tier = RateLimitTier("TEST", 60_000, 1)
        limiter = SlidingWindowRateLimiter(store, settings=test_settings, clock=clock)

        assert (await limiter.check("ip:a", "login", tier)).admitted
        assert (await limiter.check("ip:b", "login", tier)).admitted
        assert (await limiter.check("ip:a", "search", tier)).admitted
        assert not (await limiter.check("ip:a", "login", tier)).admitted

    async def test_window_key_expires(self, rate_limiter, fake_redis):
        await rate_limiter.check("ip:1.2.3.4", "tours", PUBLIC)

        key = rate_limiter.window_key("ip:1.2.3.4", "tours")
        assert key == "ratelimit:tours:ip:1.2.3.4"
        assert 0 < await fake_redis.pttl(key) <= 60_000

    async def test_concurrent_checks_admit_exactly_the_quota(self, rate_limiter):
        checks = [rate_limiter.check("ip:1.2.3.4", "login", SENSITIVE) for _ in range(5)]
        results = await asyncio.gather(*checks)

        assert sum(r.admitted for r in results) == 5

        sixth = await rate_limiter.check("ip:1.2.3.4", "login", SENSITIVE)
        assert sixth.admitted is False

    async def test_concurrent_burst_over_quota(self, rate_limiter):
        checks = [rate_limiter.check("ip:9.9.9.9", "login", SENSITIVE) for _ in range(8)]
        results = await asyncio.gather(*checks)

        assert sum(r.admitted for r in results) == 5
        assert sum(not r.admitted for r in results) == 3

    async def test_reset_clears_window(self, rate_limiter):
        for _ in range(5):
            await rate_limiter.check("ip:1.2.3.4", "login", SENSITIVE)
        assert not (await rate_limiter.check("ip:1.2.3.4", "login", SENSITIVE)).admitted

        assert await rate_limiter.reset("ip:1.2.3.4", "login") is True
        assert (await rate_limiter.check("ip:1.2.3.4", "login", SENSITIVE)).admitted
        assert await rate_limiter.reset("ip:unknown", "login") is False


@pytest.mark.unit
class TestFailOpen:

    async def test_disabled_store_admits_everything(self, disabled_store, test_settings, clock):
        limiter = SlidingWindowRateLimiter(disabled_store, settings=test_settings, clock=clock)

        for _ in range(10):
            result = await limiter.check("ip:1.2.3.4", "login", SENSITIVE)
            assert result.admitted is True
            assert result.remaining == 5

    async def test_transaction_failure_admits(self, test_settings, clock):
        store = KeyValueStore(settings=test_settings, client=CacheTestFactory.flaky_client())
        await store.connect()
        limiter = SlidingWindowRateLimiter(store, settings=test_settings, clock=clock)

        result = await limiter.check("ip:1.2.3.4", "login", SENSITIVE)

        assert result.admitted is True
        assert store.is_available is False

    async def test_kill_switch_admits_without_touching_store(self, store, fake_redis, clock):
        settings = Settings(REDIS_URL="redis://localhost:6379/0", RATE_LIMIT_ENABLED=False)
        limiter = SlidingWindowRateLimiter(store, settings=settings, clock=clock)

        for _ in range(10):
            assert (await limiter.check("ip:a", "login", SENSITIVE)).admitted

        assert await fake_redis.dbsize() == 0
