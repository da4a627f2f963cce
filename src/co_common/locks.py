"""Short-lived per-booking cancellation lock backed by Redis.

    async with booking_lock(redis, booking_id):
        ...

Raises CancellationInProgressError if another request holds the lock.
The lock expires on its own after CANCEL_LOCK_TTL_MS, so a crashed request
never blocks a booking for longer than that.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from config.settings import settings
from src.co_common.errors import CancellationInProgressError

logger = logging.getLogger(__name__)

# Delete only if we still own the key (token match).
_RELEASE_LUA = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _lock_key(booking_id: str) -> str:
    return f"cancel-lock:{booking_id}"


@asynccontextmanager
async def booking_lock(
    redis: aioredis.Redis, booking_id: str, ttl_ms: int | None = None
) -> AsyncIterator[None]:
    key = _lock_key(booking_id)
    token = uuid.uuid4().hex
    acquired = await redis.set(key, token, nx=True, px=ttl_ms or settings.CANCEL_LOCK_TTL_MS)
    if not acquired:
        raise CancellationInProgressError(booking_id)
    try:
        yield
    finally:
        released = await redis.eval(_RELEASE_LUA, 1, key, token)
        if not released:
            logger.warning("Cancellation lock expired before release: booking=%s", booking_id)
