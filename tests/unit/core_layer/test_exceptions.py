"""
Unit Tests for Core Exceptions

Tests the exception hierarchy and the structured error payload.
"""

import pytest

from tourcache.core.exceptions import (
    CacheError,
    CacheSerializationError,
    ConfigurationError,
    RateLimitError,
    RateLimitExceededError,
    StoreUnavailableError,
    TourCacheError,
)
from tourcache.rate_limiting.rate_limiter import RateLimitResult


@pytest.mark.unit
class TestTourCacheError:

    def test_defaults(self):
        error = TourCacheError("Test")

        assert str(error) == "Test"
        assert error.details == {}
        assert error.request_id is None

    def test_details_are_copied(self):
        details = {"key": "tour:1"}
        error = TourCacheError("Test", details=details)
        error.with_context(attempt=2)

        assert details == {"key": "tour:1"}
        assert error.details == {"key": "tour:1", "attempt": 2}

    def test_to_dict(self):
        error = TourCacheError("Broken", request_id="req-1", details={"a": 1})

        assert error.to_dict() == {
            "error_type": "TourCacheError",
            "message": "Broken",
            "request_id": "req-1",
            "details": {"a": 1},
        }

    def test_with_suggestion_chains(self):
        error = ConfigurationError("Bad tier").with_suggestion("Check RATE_LIMIT_* variables")

        assert isinstance(error, ConfigurationError)
        assert error.details["suggestion"] == "Check RATE_LIMIT_* variables"

    def test_from_exception_keeps_original(self):
        original = ConnectionError("refused")

        error = StoreUnavailableError.from_exception(original, attempts=3)

        assert isinstance(error, StoreUnavailableError)
        assert error.message == "refused"
        assert error.details == {
            "original_error": "ConnectionError",
            "original_message": "refused",
            "attempts": 3,
        }

    def test_repr_includes_context(self):
        error = TourCacheError("Broken", request_id="req-1", details={"a": 1})

        assert repr(error) == "TourCacheError(message='Broken', request_id='req-1', details={'a': 1})"


@pytest.mark.unit
class TestHierarchy:

    @pytest.mark.parametrize(
        "error_class, parent",
        [
            (CacheError, TourCacheError),
            (StoreUnavailableError, CacheError),
            (CacheSerializationError, CacheError),
            (ConfigurationError, TourCacheError),
            (RateLimitError, TourCacheError),
            (RateLimitExceededError, RateLimitError),
        ],
    )
    def test_inheritance(self, error_class, parent):
        assert issubclass(error_class, parent)


@pytest.mark.unit
class TestRateLimitExceededError:

    def test_default_message(self):
        error = RateLimitExceededError()

        assert error.message == "Rate limit exceeded. Please slow down."
        assert error.result is None

    def test_result_is_exposed_in_details(self):
        result = RateLimitResult(admitted=False, remaining=0, reset_at=10, limit=5, retry_after=7)

        error = RateLimitExceededError(result=result)

        assert error.result is result
        assert error.details == {"retry_after": 7, "limit": 5}
