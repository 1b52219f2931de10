"""
Request Context Adapter for Rate Limiting

Bridges HTTP requests and the sliding window limiter:
- Derives a stable client identifier from the request
- Shapes 429 responses and rate limit headers
- Provides RateLimitGuard, a FastAPI dependency that admits or rejects
  a request before the route handler runs
"""

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from tourcache.core.config.constants import (
    DEFAULT_RETRY_AFTER_SECONDS,
    HEADER_CF_CONNECTING_IP,
    HEADER_FORWARDED_FOR,
    HEADER_RATE_LIMIT_REMAINING,
    HEADER_RATE_LIMIT_RESET,
    HEADER_REAL_IP,
    HEADER_RETRY_AFTER,
    UNKNOWN_CLIENT,
    RateLimitTierName,
)
from tourcache.core.exceptions import ConfigurationError, RateLimitExceededError
from tourcache.rate_limiting.rate_limiter import (
    RateLimitResult,
    RateLimitTier,
    SlidingWindowRateLimiter,
)

RATE_LIMIT_ERROR = "Too Many Requests"
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please slow down."


def get_client_identifier(request: Request, user_id: str | None = None) -> str:
    """
    Identify the caller for rate limiting.

    Priority: authenticated user id > CDN connecting-IP header > first
    X-Forwarded-For hop > X-Real-IP > ``unknown``. Only the first forwarded
    hop is trusted; later hops are client-controlled.

    Returns:
        ``user:<id>`` or ``ip:<address>``
    """
    if user_id:
        return f"user:{user_id}"

    headers = request.headers

    ip = headers.get(HEADER_CF_CONNECTING_IP)
    if not ip:
        forwarded = headers.get(HEADER_FORWARDED_FOR)
        if forwarded:
            ip = forwarded.split(",")[0].strip()
    if not ip:
        ip = headers.get(HEADER_REAL_IP)

    return f"ip:{ip or UNKNOWN_CLIENT}"


def build_rate_limit_response(result: RateLimitResult) -> JSONResponse:
    """Build the 429 response for a rejected check."""
    return JSONResponse(
        status_code=429,
        content={
            "error": RATE_LIMIT_ERROR,
            "message": RATE_LIMIT_MESSAGE,
            "retryAfter": result.retry_after,
        },
        headers={
            HEADER_RATE_LIMIT_REMAINING: "0",
            HEADER_RATE_LIMIT_RESET: str(result.reset_at),
            HEADER_RETRY_AFTER: str(result.retry_after or DEFAULT_RETRY_AFTER_SECONDS),
        },
    )


def apply_rate_limit_headers(response: Response, result: RateLimitResult) -> Response:
    """Attach remaining quota and reset time to an admitted response."""
    response.headers[HEADER_RATE_LIMIT_REMAINING] = str(result.remaining)
    response.headers[HEADER_RATE_LIMIT_RESET] = str(result.reset_at)
    return response


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    """Return the limiter created by the application lifespan."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise ConfigurationError("Rate limiter is not initialized on app.state")
    return limiter


async def with_rate_limit(
    request: Request,
    endpoint: str,
    tier: RateLimitTier | RateLimitTierName | str,
    user_id: str | None = None,
    limiter: SlidingWindowRateLimiter | None = None,
) -> RateLimitResult:
    """
    Derive the identifier for ``request`` and run a check against ``tier``.

    Usage:
        result = await with_rate_limit(request, "inquiries", "PUBLIC")
        if not result.admitted:
            return build_rate_limit_response(result)
    """
    limiter = limiter or get_rate_limiter(request)
    identifier = get_client_identifier(request, user_id)
    return await limiter.check(identifier, endpoint, tier)


class RateLimitGuard:
    """
    FastAPI dependency that gates a route behind a rate limit tier.

    Admitted requests get X-RateLimit-Remaining and X-RateLimit-Reset on
    the response. Rejected requests raise RateLimitExceededError, which the
    application turns into a 429 before the handler runs.

    The authenticated principal is read from ``request.state.user_id`` when an
    upstream auth layer set it.

    Usage:
        @router.get("/tours", dependencies=[Depends(RateLimitGuard("tours", "PUBLIC"))])
        async def list_tours(): ...
    """

    def __init__(self, endpoint: str, tier: RateLimitTier | RateLimitTierName | str = RateLimitTierName.PUBLIC):
        self.endpoint = endpoint
        self.tier = tier

    async def __call__(self, request: Request, response: Response) -> RateLimitResult:
        user_id = getattr(request.state, "user_id", None)
        result = await with_rate_limit(request, self.endpoint, self.tier, user_id=user_id)

        if not result.admitted:
            raise RateLimitExceededError(result=result)

        apply_rate_limit_headers(response, result)
        return result
