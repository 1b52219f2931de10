"""
Request Logging Middleware
==========================

Logs every request and response, and gives each request an ID.

REQUEST ID:
-----------
The ID comes from the incoming X-Request-ID header when present, otherwise a
new uuid4. It is bound into the logging context for the duration of the
request, so cache and rate limit log lines emitted while serving it carry the
same ``request_id``, and it is echoed back on the response.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from tourcache.core.config.constants import HEADER_REQUEST_ID
from tourcache.core.logging.logger import clear_request_id, get_logger, set_request_id

logger = get_logger(__name__)

# Header values that must never reach the log stream
SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration for every request."""

    def __init__(self, app, log_level: str = "INFO"):
        super().__init__(app)
        self.log_level = log_level.upper()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)

        method = request.method
        path = request.url.path

        logger.info(
            f"Incoming request: {method} {path}",
            method=method,
            path=path,
            query_params=str(request.query_params) if request.query_params else None,
            headers=self._sanitize_headers(dict(request.headers)),
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration = time.perf_counter() - start_time
            logger.info(
                f"Request completed: {method} {path}",
                method=method,
                path=path,
                status_code=response.status_code,
                duration_seconds=round(duration, 4),
            )

            response.headers[HEADER_REQUEST_ID] = request_id
            return response

        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"Request failed: {method} {path}",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 4),
            )
            raise

        finally:
            clear_request_id()

    def _sanitize_headers(self, headers: dict) -> dict:
        return {
            key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value
            for key, value in headers.items()
        }


def add_request_logging_middleware(app, log_level: str = "INFO"):
    """Register RequestLoggingMiddleware on ``app``."""
    app.add_middleware(RequestLoggingMiddleware, log_level=log_level)
    logger.info("Request logging middleware registered", log_level=log_level)
