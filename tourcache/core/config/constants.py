"""
System Constants and Enumerations

This module defines constants and enumerations shared by the cache layer,
the rate limiter and the HTTP application.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for key prefixes and header names
- Type-safe enums for store state and stage identifiers
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field of log events.

    Format: {PREFIX}.{SEQUENCE}_{DESCRIPTIVE_NAME}
    """

    STORE_CONNECT = "KV.1_STORE_CONNECT"
    STORE_OPERATION = "KV.2_STORE_OPERATION"
    STORE_TRANSACTION = "KV.3_STORE_TRANSACTION"
    STORE_SHUTDOWN = "KV.4_STORE_SHUTDOWN"

    CACHE_LOOKUP = "C.1_CACHE_LOOKUP"
    CACHE_COMPUTE = "C.2_CACHE_COMPUTE"
    CACHE_WRITE_BACK = "C.3_CACHE_WRITE_BACK"
    CACHE_INVALIDATION = "C.4_CACHE_INVALIDATION"
    CACHE_WARMING = "C.5_CACHE_WARMING"

    RATE_LIMIT_CHECK = "RL.1_RATE_LIMIT_CHECK"
    RATE_LIMIT_REJECT = "RL.2_RATE_LIMIT_REJECT"


# ============================================================================
# Key-Value Store States
# ============================================================================


class StoreState(str, Enum):
    """
    Connection states of the key-value store handle.

    DISCONNECTED: Handle created, connect() not called yet
    CONNECTING: connect() in progress (retries included)
    CONNECTED: Store reachable, operations are forwarded
    UNAVAILABLE: Store disabled or failed; operations are pass-through

    Transitions:
        DISCONNECTED -> CONNECTING -> {CONNECTED, UNAVAILABLE}
        CONNECTED -> UNAVAILABLE (any transport error)
        UNAVAILABLE -> CONNECTING (explicit connect() only)
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    UNAVAILABLE = "unavailable"


# ============================================================================
# Cache Defaults
# ============================================================================

CACHE_DEFAULT_TTL = 300  # 5 minutes
CACHE_SCAN_BATCH_SIZE = 100
CACHE_WRITE_DRAIN_TIMEOUT = 5.0  # seconds to wait for pending writes on shutdown

# Key prefixes (structured namespace paths)
KEY_PREFIX_TOUR = "tour"
KEY_PREFIX_TOURS = "tours"
KEY_PREFIX_CATEGORY = "category"
KEY_PREFIX_CATEGORIES = "categories"
KEY_PREFIX_BLOG = "blog"
KEY_PREFIX_SETTINGS = "settings"
KEY_PREFIX_FAQ = "faq"
KEY_PREFIX_TESTIMONIALS = "testimonials"
KEY_PREFIX_RATE_LIMIT = "ratelimit"


# ============================================================================
# Rate Limit Tier Defaults
# ============================================================================


class RateLimitTierName(str, Enum):
    """Closed set of rate limit tiers, ordered by caller trust level."""

    PUBLIC = "PUBLIC"
    AUTHENTICATED = "AUTHENTICATED"
    ADMIN = "ADMIN"
    SENSITIVE = "SENSITIVE"
    HEAVY = "HEAVY"


# tier -> (window_ms, max_requests)
DEFAULT_RATE_LIMIT_TIERS: dict[RateLimitTierName, tuple[int, int]] = {
    RateLimitTierName.PUBLIC: (60_000, 30),
    RateLimitTierName.AUTHENTICATED: (60_000, 100),
    RateLimitTierName.ADMIN: (60_000, 200),
    RateLimitTierName.SENSITIVE: (15 * 60_000, 5),  # login, register, password reset
    RateLimitTierName.HEAVY: (60_000, 10),  # search and other expensive endpoints
}

# Retry-After fallback when no retry-after value is known
DEFAULT_RETRY_AFTER_SECONDS = 60


# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_RATE_LIMIT_REMAINING = "X-RateLimit-Remaining"
HEADER_RATE_LIMIT_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"

# Client IP headers, in order of trust
HEADER_CF_CONNECTING_IP = "cf-connecting-ip"
HEADER_FORWARDED_FOR = "x-forwarded-for"
HEADER_REAL_IP = "x-real-ip"

UNKNOWN_CLIENT = "unknown"
