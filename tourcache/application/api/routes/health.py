"""
Health Check Routes
===================

Liveness and readiness probes for load balancers and orchestrators.

ENDPOINTS:
----------
- GET /health        : Liveness. Always 200 while the process can answer.
- GET /health/ready  : Readiness with component detail.

DEGRADED IS STILL READY:
------------------------
Caching and rate limiting fail open. Without the key-value store the
service still serves every request (fetchers run directly, rate limits
admit everything), so readiness reports ``degraded`` with HTTP 200 rather
than taking the instance out of rotation.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from tourcache.application.api.dependencies import CacheDep, LimiterDep, SettingsDep
from tourcache.core.logging.logger import get_logger

router = APIRouter(prefix="/health", tags=["Health"])
logger = get_logger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str = Field(..., description="Overall status")
    timestamp: str = Field(..., description="UTC timestamp (ISO 8601)")
    version: str | None = Field(default=None, description="Application version")


class ReadinessResponse(BaseModel):
    """Readiness response with per-component detail."""

    status: str = Field(..., description="healthy | degraded")
    timestamp: str
    components: dict[str, Any] = Field(default_factory=dict)


@router.get("", response_model=HealthResponse)
async def health_check(settings: SettingsDep):
    """Liveness probe."""
    return HealthResponse(
        status="healthy",
        timestamp=_utc_now(),
        version=settings.app.APP_VERSION,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(cache: CacheDep, limiter: LimiterDep):
    """
    Readiness probe.

    Components:
        cache: CacheManager.health_check() (includes the store's ping latency)
        rate_limiter: whether decisions are enforced or failing open
    """
    cache_health = await cache.health_check()

    if not limiter.is_enabled:
        limiter_status = "disabled"
    else:
        limiter_status = "healthy" if limiter.is_available else "degraded"

    components = {
        "cache": cache_health,
        "rate_limiter": {
            "status": limiter_status,
            "enforcing": limiter.is_available,
        },
    }

    overall = "healthy"
    if any(c["status"] == "degraded" for c in components.values()):
        overall = "degraded"
        logger.warning("Readiness degraded", components=components)

    return ReadinessResponse(status=overall, timestamp=_utc_now(), components=components)
