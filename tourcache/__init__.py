"""
Tour Cache Service

Read-through caching and sliding window rate limiting backed by Redis,
degrading to pass-through when Redis is unavailable.
"""

__version__ = "1.0.0"
