"""
Cache Test Factory

Creates Redis client doubles with various failure behaviours, a controllable
clock for the rate limiter, and a small pydantic model for serialization tests.
"""

from unittest.mock import AsyncMock, MagicMock

from pydantic import BaseModel
from redis.exceptions import ConnectionError as RedisConnectionError


class Tour(BaseModel):
    id: int
    slug: str
    title: str
    price: float
    tags: list[str] = []


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 0):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class CacheTestFactory:
    """Factory for creating Redis client doubles."""

    @staticmethod
    def refusing_client(error: Exception | None = None) -> MagicMock:
        """A client whose PING always fails, as if Redis were down."""
        error = error or RedisConnectionError("Connection refused")

        client = MagicMock()
        client.ping = AsyncMock(side_effect=error)
        client.aclose = AsyncMock()
        return client

    @staticmethod
    def flaky_client(error: Exception | None = None) -> MagicMock:
        """
        A client that connects fine, then fails every data command.

        Models Redis going away between startup and the first request.
        """
        error = error or RedisConnectionError("Connection reset by peer")

        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        for command in ("get", "set", "delete", "ttl", "scan", "zadd", "zcard", "pexpire"):
            setattr(client, command, AsyncMock(side_effect=error))

        pipeline = MagicMock()
        pipeline.execute = AsyncMock(side_effect=error)
        client.pipeline = MagicMock(return_value=pipeline)
        return client

    @staticmethod
    def recovering_client(failures: int) -> MagicMock:
        """A client whose PING fails ``failures`` times, then succeeds."""
        client = MagicMock()
        client.ping = AsyncMock(
            side_effect=[RedisConnectionError("not ready")] * failures + [True]
        )
        client.aclose = AsyncMock()
        return client
