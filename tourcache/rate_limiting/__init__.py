"""
Rate Limiting Module

Sliding window rate limiting over a fail-open Redis handle.
"""

from .rate_limiter import (
    RateLimitResult,
    RateLimitTier,
    SlidingWindowRateLimiter,
    build_tiers,
)
from .request_context import (
    RateLimitGuard,
    apply_rate_limit_headers,
    build_rate_limit_response,
    get_client_identifier,
    with_rate_limit,
)

__all__ = [
    "RateLimitGuard",
    "RateLimitResult",
    "RateLimitTier",
    "SlidingWindowRateLimiter",
    "apply_rate_limit_headers",
    "build_rate_limit_response",
    "build_tiers",
    "get_client_identifier",
    "with_rate_limit",
]
