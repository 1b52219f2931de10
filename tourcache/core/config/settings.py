#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the cache
and rate-limiting layer and the HTTP application around it.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms

Note: REDIS_URL is optional. Leaving it unset is a supported configuration
that disables caching and rate limiting.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tourcache.core.config.constants import (
    CACHE_DEFAULT_TTL,
    CACHE_SCAN_BATCH_SIZE,
    DEFAULT_RATE_LIMIT_TIERS,
    KEY_PREFIX_RATE_LIMIT,
    RateLimitTierName,
)


class RedisSettings(BaseSettings):
    """
    Key-value store connection configuration.

    STAGE-KV.0: Store connection configuration

    Connect policy:
    - Per-attempt connect timeout: 5s
    - Retry budget: 2 additional attempts after the first failure
    - Linear backoff: attempt * 100ms, capped at 1s
    """

    REDIS_URL: str | None = Field(default=None, description="Redis connection string (unset = disabled)")
    REDIS_CONNECT_TIMEOUT: float = Field(default=5.0, gt=0, description="Connect timeout in seconds")
    REDIS_CONNECT_RETRIES: int = Field(default=2, ge=0, description="Additional connect attempts")
    REDIS_RETRY_BACKOFF_STEP: float = Field(default=0.1, ge=0, description="Linear backoff step in seconds")
    REDIS_RETRY_BACKOFF_MAX: float = Field(default=1.0, ge=0, description="Backoff cap in seconds")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, gt=0, description="Socket timeout in seconds")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, gt=0, description="Connection pool size")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Read-through cache configuration.

    STAGE-C.0: Cache configuration
    """

    CACHE_ENABLED: bool = Field(default=True, description="Operator kill switch for caching")
    CACHE_DEFAULT_TTL: int = Field(default=CACHE_DEFAULT_TTL, gt=0, description="Default TTL (5 minutes)")
    CACHE_SCAN_BATCH_SIZE: int = Field(default=CACHE_SCAN_BATCH_SIZE, gt=0, description="SCAN COUNT per round")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Sliding-window rate limiting configuration.

    STAGE-RL.0: Rate limit tiers

    Every tier is a (window_ms, max_requests) pair. Defaults:
    - PUBLIC: 30 / minute
    - AUTHENTICATED: 100 / minute
    - ADMIN: 200 / minute
    - SENSITIVE: 5 / 15 minutes
    - HEAVY: 10 / minute
    """

    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Operator kill switch for rate limiting")
    RATE_LIMIT_KEY_PREFIX: str = Field(default=KEY_PREFIX_RATE_LIMIT, description="Window key prefix")

    RATE_LIMIT_PUBLIC_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_PUBLIC_MAX_REQUESTS: int = Field(default=30, gt=0)
    RATE_LIMIT_AUTHENTICATED_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_AUTHENTICATED_MAX_REQUESTS: int = Field(default=100, gt=0)
    RATE_LIMIT_ADMIN_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_ADMIN_MAX_REQUESTS: int = Field(default=200, gt=0)
    RATE_LIMIT_SENSITIVE_WINDOW_MS: int = Field(default=900_000, gt=0)
    RATE_LIMIT_SENSITIVE_MAX_REQUESTS: int = Field(default=5, gt=0)
    RATE_LIMIT_HEAVY_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_HEAVY_MAX_REQUESTS: int = Field(default=10, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    def tier_limits(self) -> dict[RateLimitTierName, tuple[int, int]]:
        """Return tier -> (window_ms, max_requests) with overrides applied."""
        limits = {}
        for tier in DEFAULT_RATE_LIMIT_TIERS:
            window_ms = getattr(self, f"RATE_LIMIT_{tier.value}_WINDOW_MS")
            max_requests = getattr(self, f"RATE_LIMIT_{tier.value}_MAX_REQUESTS")
            limits[tier] = (window_ms, max_requests)
        return limits


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Tour Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from tourcache.core.config.settings import get_settings

        settings = get_settings()
        url = settings.redis.REDIS_URL
        ttl = settings.cache.CACHE_DEFAULT_TTL
    """

    # Redis settings
    REDIS_URL: str | None = Field(default=None, description="Redis connection string (unset = disabled)")
    REDIS_CONNECT_TIMEOUT: float = Field(default=5.0, gt=0, description="Connect timeout in seconds")
    REDIS_CONNECT_RETRIES: int = Field(default=2, ge=0, description="Additional connect attempts")
    REDIS_RETRY_BACKOFF_STEP: float = Field(default=0.1, ge=0, description="Linear backoff step in seconds")
    REDIS_RETRY_BACKOFF_MAX: float = Field(default=1.0, ge=0, description="Backoff cap in seconds")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, gt=0, description="Socket timeout in seconds")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, gt=0, description="Connection pool size")

    # Cache settings
    CACHE_ENABLED: bool = Field(default=True, description="Operator kill switch for caching")
    CACHE_DEFAULT_TTL: int = Field(default=CACHE_DEFAULT_TTL, gt=0, description="Default TTL (5 minutes)")
    CACHE_SCAN_BATCH_SIZE: int = Field(default=CACHE_SCAN_BATCH_SIZE, gt=0, description="SCAN COUNT per round")

    # Rate Limiting settings
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Operator kill switch for rate limiting")
    RATE_LIMIT_KEY_PREFIX: str = Field(default=KEY_PREFIX_RATE_LIMIT, description="Window key prefix")
    RATE_LIMIT_PUBLIC_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_PUBLIC_MAX_REQUESTS: int = Field(default=30, gt=0)
    RATE_LIMIT_AUTHENTICATED_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_AUTHENTICATED_MAX_REQUESTS: int = Field(default=100, gt=0)
    RATE_LIMIT_ADMIN_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_ADMIN_MAX_REQUESTS: int = Field(default=200, gt=0)
    RATE_LIMIT_SENSITIVE_WINDOW_MS: int = Field(default=900_000, gt=0)
    RATE_LIMIT_SENSITIVE_MAX_REQUESTS: int = Field(default=5, gt=0)
    RATE_LIMIT_HEAVY_WINDOW_MS: int = Field(default=60_000, gt=0)
    RATE_LIMIT_HEAVY_MAX_REQUESTS: int = Field(default=10, gt=0)

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Tour Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_BASE_PATH: str = Field(default="/api", description="Prefix for all API routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def empty_url_means_disabled(cls, v):
        """Treat an empty or blank REDIS_URL the same as an unset one."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration views
    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return RedisSettings(
            REDIS_URL=self.REDIS_URL,
            REDIS_CONNECT_TIMEOUT=self.REDIS_CONNECT_TIMEOUT,
            REDIS_CONNECT_RETRIES=self.REDIS_CONNECT_RETRIES,
            REDIS_RETRY_BACKOFF_STEP=self.REDIS_RETRY_BACKOFF_STEP,
            REDIS_RETRY_BACKOFF_MAX=self.REDIS_RETRY_BACKOFF_MAX,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            CACHE_ENABLED=self.CACHE_ENABLED,
            CACHE_DEFAULT_TTL=self.CACHE_DEFAULT_TTL,
            CACHE_SCAN_BATCH_SIZE=self.CACHE_SCAN_BATCH_SIZE,
        )

    @property
    def rate_limit(self) -> RateLimitSettings:
        """Get rate limit settings."""
        return RateLimitSettings(
            **{
                name: getattr(self, name)
                for name in RateLimitSettings.model_fields
            }
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_BASE_PATH=self.API_BASE_PATH,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.1: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
