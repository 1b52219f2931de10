"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

import pytest
from pydantic import ValidationError

from tourcache.core.config.constants import RateLimitTierName
from tourcache.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:

    def test_settings_has_section_views(self):
        settings = Settings()

        assert hasattr(settings, "redis")
        assert hasattr(settings, "cache")
        assert hasattr(settings, "rate_limit")
        assert hasattr(settings, "logging")
        assert hasattr(settings, "app")

    def test_redis_defaults(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.redis.REDIS_URL is None
        assert settings.redis.REDIS_CONNECT_TIMEOUT == 5.0
        assert settings.redis.REDIS_CONNECT_RETRIES == 2
        assert settings.redis.REDIS_RETRY_BACKOFF_STEP == 0.1

    def test_cache_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.cache.CACHE_ENABLED is True
        assert settings.cache.CACHE_DEFAULT_TTL == 300
        assert settings.cache.CACHE_SCAN_BATCH_SIZE == 100

    def test_rate_limit_tier_limits(self):
        limits = Settings(_env_file=None).rate_limit.tier_limits()

        assert limits[RateLimitTierName.PUBLIC] == (60_000, 30)
        assert limits[RateLimitTierName.AUTHENTICATED] == (60_000, 100)
        assert limits[RateLimitTierName.ADMIN] == (60_000, 200)
        assert limits[RateLimitTierName.SENSITIVE] == (900_000, 5)
        assert limits[RateLimitTierName.HEAVY] == (60_000, 10)

    def test_app_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.app.APP_NAME == "Tour Cache Service"
        assert settings.API_BASE_PATH == "/api"


@pytest.mark.unit
class TestSettingsValidation:

    @pytest.mark.parametrize("url", ["", "   "])
    def test_blank_redis_url_means_disabled(self, url):
        assert Settings(REDIS_URL=url).REDIS_URL is None

    def test_redis_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")

        assert Settings().redis.REDIS_URL == "redis://cache:6379/1"

    def test_tier_override_from_environment(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_SENSITIVE_MAX_REQUESTS", "3")

        limits = Settings().rate_limit.tier_limits()

        assert limits[RateLimitTierName.SENSITIVE] == (900_000, 3)

    def test_log_level_is_normalized(self):
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="LOUD")

    @pytest.mark.parametrize(
        "field", ["CACHE_DEFAULT_TTL", "RATE_LIMIT_PUBLIC_WINDOW_MS", "RATE_LIMIT_PUBLIC_MAX_REQUESTS"]
    )
    def test_non_positive_values_are_rejected(self, field):
        with pytest.raises(ValidationError):
            Settings(**{field: 0})


@pytest.mark.unit
class TestSettingsSingleton:

    def test_get_settings_returns_same_instance(self):
        assert get_settings() is get_settings()

    def test_reload_settings_picks_up_environment(self, monkeypatch):
        monkeypatch.setenv("CACHE_DEFAULT_TTL", "42")
        try:
            assert reload_settings().CACHE_DEFAULT_TTL == 42
            assert get_settings().CACHE_DEFAULT_TTL == 42
        finally:
            monkeypatch.delenv("CACHE_DEFAULT_TTL")
            reload_settings()
