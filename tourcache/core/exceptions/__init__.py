"""
Exception Module

Structured exception hierarchy for the tour cache service.

Module Structure:
-----------------
- **base.py**: TourCacheError base class + ConfigurationError
- **cache.py**: Key-value store and cache exceptions
- **rate_limit.py**: Rate limiting exceptions

Usage:
------
```python
from tourcache.core.exceptions import StoreUnavailableError, RateLimitExceededError
```
"""

from tourcache.core.exceptions.base import ConfigurationError, TourCacheError
from tourcache.core.exceptions.cache import (
    CacheError,
    CacheSerializationError,
    StoreUnavailableError,
)
from tourcache.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError

__all__ = [
    # Base
    "TourCacheError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "StoreUnavailableError",
    "CacheSerializationError",
    # Rate Limit
    "RateLimitError",
    "RateLimitExceededError",
]
