"""
Rate Limiting Exceptions
"""

from typing import TYPE_CHECKING, Any

from tourcache.core.exceptions.base import TourCacheError

if TYPE_CHECKING:
    from tourcache.rate_limiting.rate_limiter import RateLimitResult


class RateLimitError(TourCacheError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when a caller exceeds their tier's budget.

    Carries the rejected RateLimitResult so the exception handler can shape
    the 429 response (Retry-After, X-RateLimit-Remaining, X-RateLimit-Reset).
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please slow down.",
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
        result: "RateLimitResult | None" = None,
    ):
        super().__init__(message, request_id=request_id, details=details)
        self.result = result
        if result is not None:
            self.details.setdefault("retry_after", result.retry_after)
            self.details.setdefault("limit", result.limit)
