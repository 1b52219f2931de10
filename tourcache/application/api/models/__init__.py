from .admin import (
    CacheStatsResponse,
    InvalidateEntityRequest,
    InvalidatePatternRequest,
    InvalidationResponse,
    RateLimitResetResponse,
)

__all__ = [
    "CacheStatsResponse",
    "InvalidateEntityRequest",
    "InvalidatePatternRequest",
    "InvalidationResponse",
    "RateLimitResetResponse",
]
