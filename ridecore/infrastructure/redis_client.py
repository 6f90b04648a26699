"""Redis async connection pool."""

from typing import Optional

import redis.asyncio as aioredis

from ridecore.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> Optional[aioredis.Redis]:
    """Return a Redis client backed by the shared pool, or None when disabled."""
    if not settings.redis_enabled:
        return None
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    await _pool.disconnect()
