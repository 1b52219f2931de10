#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Wires the key-value store, the cache manager and the sliding window rate
limiter into a FastAPI application and exposes the health and cache admin
routes.

Run with:
    uvicorn tourcache.application.app:app
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tourcache.application.api.middleware import setup_middleware
from tourcache.application.api.routes import admin_router, health_router, metrics_router
from tourcache.core.config.constants import (
    DEFAULT_RETRY_AFTER_SECONDS,
    HEADER_RATE_LIMIT_REMAINING,
    HEADER_RATE_LIMIT_RESET,
    HEADER_REQUEST_ID,
    HEADER_RETRY_AFTER,
)
from tourcache.core.config.settings import Settings, get_settings
from tourcache.core.exceptions import RateLimitExceededError, TourCacheError
from tourcache.core.logging.logger import get_logger, get_request_id, setup_logging
from tourcache.infrastructure.cache.cache_manager import CacheManager
from tourcache.infrastructure.cache.redis_client import KeyValueStore
from tourcache.rate_limiting.rate_limiter import SlidingWindowRateLimiter
from tourcache.rate_limiting.request_context import build_rate_limit_response

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).

    Startup never fails because of the store: connect() degrades to
    UNAVAILABLE and the cache and limiter fail open from then on.
    A store placed on ``app.state.store`` before startup is reused.
    """
    settings: Settings = app.state.settings

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting Tour Cache Service",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    store = getattr(app.state, "store", None) or KeyValueStore(settings=settings)
    connected = await store.connect()
    logger.info("Key-value store initialized", connected=connected, state=store.state.value)

    cache_manager = CacheManager(store, settings=settings)
    rate_limiter = SlidingWindowRateLimiter(store, settings=settings)

    # Store in app state for dependencies.py
    app.state.store = store
    app.state.cache_manager = cache_manager
    app.state.rate_limiter = rate_limiter

    logger.info("Application startup complete")

    try:
        yield

    finally:
        logger.info("Shutting down application")

        await cache_manager.flush_pending_writes()
        await store.disconnect()

        logger.info("Application shutdown complete")


# ============================================================================
# Exception Handlers
# ============================================================================


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError):
    if exc.result is not None:
        return build_rate_limit_response(exc.result)
    return JSONResponse(
        status_code=429,
        content={"error": "Too Many Requests", "message": exc.message, "retryAfter": None},
        headers={HEADER_RETRY_AFTER: str(DEFAULT_RETRY_AFTER_SECONDS)},
    )


async def tourcache_error_handler(request: Request, exc: TourCacheError):
    logger.error(
        "Service error",
        error_type=type(exc).__name__,
        error=exc.message,
        path=request.url.path,
    )
    if exc.request_id is None:
        exc.request_id = get_request_id()
    return JSONResponse(status_code=500, content=exc.to_dict())


# ============================================================================
# Application Factory
# ============================================================================


def create_app(settings: Settings | None = None, store: KeyValueStore | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to the global settings)
        store: Pre-built key-value store; tests pass one backed by fakeredis

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Read-through cache and sliding window rate limiting for the tour catalog",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.store = store

    # Error handling first, request logging last so it wraps everything
    setup_middleware(app, settings)

    # CORS outermost so rate limit and error responses carry CORS headers too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            HEADER_REQUEST_ID,
            HEADER_RATE_LIMIT_REMAINING,
            HEADER_RATE_LIMIT_RESET,
            HEADER_RETRY_AFTER,
        ],
    )

    app.add_exception_handler(RateLimitExceededError, rate_limit_exceeded_handler)
    app.add_exception_handler(TourCacheError, tourcache_error_handler)

    base_path = settings.API_BASE_PATH

    app.include_router(health_router, prefix=base_path)
    app.include_router(metrics_router, prefix=base_path)
    app.include_router(admin_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "service": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app


# Create application instance
app = create_app()
