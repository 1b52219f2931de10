"""
Admin Routes
============

Operator endpoints for inspecting and clearing cached state.

ENDPOINTS:
----------
- GET    /metrics                                  Prometheus exposition
- GET    /cache/stats                              Cache counters and store health
- DELETE /cache/keys/{key}                         Drop one key
- POST   /cache/invalidate                         Drop every key matching a glob
- POST   /cache/entities/{entity_id}/invalidate    Drop every view of one entity
- DELETE /rate-limits/{endpoint}/{identifier}      Clear one client's window

The cache and rate limit endpoints sit behind the ADMIN rate limit tier.
All of them answer normally when the store is down: invalidations report
``deleted: 0`` with ``store_state`` showing why.
"""

from fastapi import APIRouter, Depends, Response

from tourcache.application.api.dependencies import CacheDep, LimiterDep, StoreDep
from tourcache.application.api.models.admin import (
    CacheStatsResponse,
    InvalidateEntityRequest,
    InvalidatePatternRequest,
    InvalidationResponse,
    RateLimitResetResponse,
)
from tourcache.core.config.constants import RateLimitTierName
from tourcache.core.logging.logger import get_logger
from tourcache.infrastructure.cache.cache_keys import KEYSPACES
from tourcache.infrastructure.monitoring.metrics_collector import get_metrics_collector
from tourcache.rate_limiting.request_context import RateLimitGuard

logger = get_logger(__name__)

router = APIRouter(
    tags=["Cache Admin"],
    dependencies=[Depends(RateLimitGuard("admin", RateLimitTierName.ADMIN))],
)

metrics_router = APIRouter(tags=["Monitoring"])


@metrics_router.get("/metrics")
async def get_metrics():
    """Prometheus metrics in text exposition format."""
    metrics = get_metrics_collector()
    return Response(
        content=metrics.get_prometheus_metrics(),
        media_type=metrics.get_content_type(),
    )


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(cache: CacheDep, store: StoreDep):
    return CacheStatsResponse(cache=cache.stats(), store=await store.health_check())


@router.delete("/cache/keys/{key:path}", response_model=InvalidationResponse)
async def delete_cache_key(key: str, cache: CacheDep, store: StoreDep):
    deleted = await cache.invalidate(key)
    logger.info("Admin deleted cache key", cache_key=key, deleted=deleted)
    return InvalidationResponse(deleted=deleted, store_state=store.state.value, key=key)


@router.post("/cache/invalidate", response_model=InvalidationResponse)
async def invalidate_pattern(body: InvalidatePatternRequest, cache: CacheDep, store: StoreDep):
    """
    Drop every key matching ``body.pattern``.

    Uses cursor-based SCAN, so it is safe on large keyspaces, but a broad
    pattern like ``*`` empties the whole cache.
    """
    deleted = await cache.invalidate_pattern(body.pattern)
    logger.info("Admin invalidated pattern", pattern=body.pattern, deleted=deleted)
    return InvalidationResponse(
        deleted=deleted, store_state=store.state.value, pattern=body.pattern
    )


@router.post("/cache/entities/{entity_id}/invalidate", response_model=InvalidationResponse)
async def invalidate_entity(
    entity_id: str,
    body: InvalidateEntityRequest,
    cache: CacheDep,
    store: StoreDep,
):
    """Drop an entity's own key, its related keys, aggregates and listings."""
    deleted = await cache.invalidate_entity_caches(
        entity_id,
        related_keys=body.related_keys,
        keyspace=KEYSPACES[body.entity],
    )
    logger.info(
        "Admin invalidated entity caches",
        entity=body.entity,
        entity_id=entity_id,
        deleted=deleted,
    )
    return InvalidationResponse(
        deleted=deleted,
        store_state=store.state.value,
        entity=body.entity,
        entity_id=entity_id,
    )


@router.delete("/rate-limits/{endpoint}/{identifier}", response_model=RateLimitResetResponse)
async def reset_rate_limit(endpoint: str, identifier: str, limiter: LimiterDep):
    reset = await limiter.reset(identifier, endpoint)
    return RateLimitResetResponse(endpoint=endpoint, identifier=identifier, reset=reset)
