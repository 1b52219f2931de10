"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.

Redis is replaced by fakeredis, injected through ``KeyValueStore(client=...)``.
Failure modes (refused connections, mid-flight errors) use AsyncMock clients
from ``tests.test_fixtures.CacheTestFactory``.
"""

import os
import sys

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures import FakeClock  # noqa: E402
from tourcache.core.config.settings import Settings  # noqa: E402
from tourcache.infrastructure.cache.cache_manager import CacheManager  # noqa: E402
from tourcache.infrastructure.cache.redis_client import KeyValueStore  # noqa: E402
from tourcache.rate_limiting.rate_limiter import SlidingWindowRateLimiter  # noqa: E402

# pytest-asyncio runs in auto mode (see pyproject.toml)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Settings for tests.

    Retries are kept but backoff is zero so failure paths do not sleep.
    """
    return Settings(
        REDIS_URL="redis://localhost:6379/0",
        REDIS_CONNECT_RETRIES=2,
        REDIS_RETRY_BACKOFF_STEP=0,
        REDIS_CONNECT_TIMEOUT=2.0,
        ENVIRONMENT="test",
        LOG_FORMAT="console",
    )


@pytest.fixture
def disabled_settings():
    """Settings with no REDIS_URL: store disabled, everything fails open."""
    return Settings(REDIS_URL="", ENVIRONMENT="test")


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
async def fake_redis():
    """In-process Redis with real command semantics, isolated per test."""
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
async def store(test_settings, fake_redis):
    """Connected KeyValueStore backed by fakeredis."""
    kv = KeyValueStore(settings=test_settings, client=fake_redis)
    assert await kv.connect() is True
    return kv


@pytest.fixture
async def disabled_store(disabled_settings):
    """KeyValueStore with no URL configured, already moved to UNAVAILABLE."""
    kv = KeyValueStore(settings=disabled_settings)
    await kv.connect()
    return kv


# ============================================================================
# Cache / Rate Limit Fixtures
# ============================================================================


@pytest.fixture
def cache_manager(store, test_settings):
    return CacheManager(store, settings=test_settings)


@pytest.fixture
def clock():
    """Controllable millisecond clock starting at a fixed epoch."""
    return FakeClock(start_ms=1_700_000_000_000)


@pytest.fixture
def rate_limiter(store, test_settings, clock):
    return SlidingWindowRateLimiter(store, settings=test_settings, clock=clock)
