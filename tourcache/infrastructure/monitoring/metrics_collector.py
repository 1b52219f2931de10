#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides metrics for the cache and rate limiting layer:
- Cache hit/miss/write counters
- Invalidation volume
- Rate limit decisions by tier and outcome
- Key-value store availability

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Counters are process-global, so every CacheManager and limiter
  instance in the process reports into the same series
"""


from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Info,
    generate_latest,
)

from tourcache.core.config.settings import get_settings
from tourcache.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Cache metrics
CACHE_HITS = Counter(
    'tourcache_cache_hits_total',
    'Total cache hits',
)

CACHE_MISSES = Counter(
    'tourcache_cache_misses_total',
    'Total cache misses (including lookups while the store is unavailable)',
)

CACHE_WRITES = Counter(
    'tourcache_cache_writes_total',
    'Total cache write-backs by outcome',
    ['status']  # success, failure
)

CACHE_SERIALIZATION_FAILURES = Counter(
    'tourcache_cache_serialization_failures_total',
    'Stored values that failed to encode or decode',
    ['direction']  # encode, decode
)

CACHE_INVALIDATED_KEYS = Counter(
    'tourcache_cache_invalidated_keys_total',
    'Total keys deleted by invalidation',
)

# Rate limiting metrics
RATE_LIMIT_DECISIONS = Counter(
    'tourcache_rate_limit_decisions_total',
    'Rate limit decisions by tier and outcome',
    ['tier', 'outcome']  # admitted, rejected, fail_open
)

# Store metrics
STORE_AVAILABLE = Gauge(
    'tourcache_store_available',
    'Key-value store availability (1=connected, 0=unavailable or disabled)'
)

STORE_ERRORS = Counter(
    'tourcache_store_errors_total',
    'Transport errors that moved the store to unavailable',
    ['operation']
)

# App info
APP_INFO = Info(
    'tourcache_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_hit()
        metrics.record_rate_limit_decision("PUBLIC", "rejected")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_hit(self) -> None:
        CACHE_HITS.inc()

    def record_cache_miss(self) -> None:
        CACHE_MISSES.inc()

    def record_cache_write(self, success: bool) -> None:
        """Record the outcome of a write-back."""
        CACHE_WRITES.labels(status="success" if success else "failure").inc()

    def record_serialization_failure(self, direction: str) -> None:
        CACHE_SERIALIZATION_FAILURES.labels(direction=direction).inc()

    def record_invalidated_keys(self, count: int) -> None:
        if count > 0:
            CACHE_INVALIDATED_KEYS.inc(count)

    # =========================================================================
    # Rate Limiting Metrics
    # =========================================================================

    def record_rate_limit_decision(self, tier: str, outcome: str) -> None:
        """Record a rate limit decision (admitted, rejected, fail_open)."""
        RATE_LIMIT_DECISIONS.labels(tier=tier, outcome=outcome).inc()

    # =========================================================================
    # Store Metrics
    # =========================================================================

    def set_store_available(self, available: bool) -> None:
        STORE_AVAILABLE.set(1 if available else 0)

    def record_store_error(self, operation: str) -> None:
        STORE_ERRORS.labels(operation=operation).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
