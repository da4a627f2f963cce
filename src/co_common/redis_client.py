"""Shared Redis connection for per-booking cancellation locks.

Bookings, refunds and credits live in PostgreSQL. Redis only ever holds
short-lived lock keys that expire on their own.
"""

import redis.asyncio as aioredis

from config.settings import settings

_client: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global _client  # noqa: PLW0603
    if _client is None:
        _client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None
