"""
Middleware Package
==================

AVAILABLE MIDDLEWARE:
---------------------
1. error_handler: Convert unhandled exceptions into JSON 500 responses
2. request_logging: Request/response logging with X-Request-ID correlation

MIDDLEWARE ORDERING:
--------------------
Starlette runs the most recently added middleware first. Request logging is
added last so it wraps everything, including error handling, and every log
line for a request carries its request id.
"""

from fastapi import FastAPI

from tourcache.core.config.settings import Settings, get_settings
from tourcache.core.logging.logger import get_logger

from .error_handler import ErrorHandlingMiddleware, add_error_handling_middleware
from .request_logging import RequestLoggingMiddleware, add_request_logging_middleware

logger = get_logger(__name__)


def setup_middleware(app: FastAPI, settings: Settings | None = None):
    """Register all middleware components in order."""
    settings = settings or get_settings()

    add_error_handling_middleware(
        app, include_traceback=(settings.app.ENVIRONMENT == "development")
    )
    add_request_logging_middleware(app, log_level=settings.logging.LOG_LEVEL)

    logger.info("All middleware components registered successfully")


__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "add_error_handling_middleware",
    "add_request_logging_middleware",
    "setup_middleware",
]
