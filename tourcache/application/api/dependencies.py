"""
FastAPI Dependency Injection Module
===================================

The key-value store, cache manager and rate limiter are built once in the
application lifespan and stored on ``app.state``. Route handlers receive them
through the providers below instead of reaching for module globals, which
keeps tests free to hand the app a fakeredis-backed store.

Example:
    @router.get("/tours/{tour_id}")
    async def get_tour(tour_id: int, cache: CacheDep):
        return await cache.get_or_compute(
            CacheKeys.tour(tour_id), lambda: repository.get_tour(tour_id)
        )
"""

from typing import Annotated

from fastapi import Depends, Request

from tourcache.core.config.settings import Settings
from tourcache.core.exceptions import ConfigurationError
from tourcache.infrastructure.cache.cache_manager import CacheManager
from tourcache.infrastructure.cache.redis_client import KeyValueStore
from tourcache.rate_limiting.rate_limiter import SlidingWindowRateLimiter
from tourcache.rate_limiting.request_context import get_rate_limiter


def _from_state(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise ConfigurationError(f"{name} is not initialized on app.state")
    return component


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return _from_state(request, "settings")


def get_store(request: Request) -> KeyValueStore:
    return _from_state(request, "store")


def get_cache_manager(request: Request) -> CacheManager:
    return _from_state(request, "cache_manager")


# ============================================================================
# TYPE ALIASES
# ============================================================================

SettingsDep = Annotated[Settings, Depends(get_app_settings)]
StoreDep = Annotated[KeyValueStore, Depends(get_store)]
CacheDep = Annotated[CacheManager, Depends(get_cache_manager)]
LimiterDep = Annotated[SlidingWindowRateLimiter, Depends(get_rate_limiter)]
