"""
Admin API Models
================

Request and response bodies for the cache administration endpoints.

Every response echoes what was targeted (key, pattern, entity) next to the
number of keys removed, so an operator can tell "nothing matched" apart from
"store unavailable" by also checking ``store_state``.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from tourcache.infrastructure.cache.cache_keys import KEYSPACES


# ============================================================================
# REQUEST MODELS
# ============================================================================


class InvalidatePatternRequest(BaseModel):
    """Body of POST /cache/invalidate."""

    pattern: str = Field(..., description="Glob pattern, e.g. 'tours:list:*'")

    @field_validator("pattern")
    @classmethod
    def pattern_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("pattern must not be empty")
        return v


class InvalidateEntityRequest(BaseModel):
    """Body of POST /cache/entities/{entity_id}/invalidate."""

    entity: str = Field(default="tour", description="Entity keyspace name")
    related_keys: list[str] = Field(
        default_factory=list,
        description="Extra keys holding views of the entity, e.g. 'tour:slug:gobi-tour'",
    )

    @field_validator("entity")
    @classmethod
    def entity_is_known(cls, v: str) -> str:
        if v not in KEYSPACES:
            raise ValueError(f"entity must be one of {sorted(KEYSPACES)}")
        return v


# ============================================================================
# RESPONSE MODELS
# ============================================================================


class InvalidationResponse(BaseModel):
    """Outcome of any invalidation call."""

    deleted: int = Field(..., ge=0, description="Number of keys removed")
    store_state: str = Field(..., description="Key-value store state after the call")
    key: str | None = None
    pattern: str | None = None
    entity: str | None = None
    entity_id: str | None = None


class RateLimitResetResponse(BaseModel):
    endpoint: str
    identifier: str
    reset: bool = Field(..., description="True if a window existed and was cleared")


class CacheStatsResponse(BaseModel):
    """Cache counters plus store health."""

    cache: dict[str, Any]
    store: dict[str, Any]
