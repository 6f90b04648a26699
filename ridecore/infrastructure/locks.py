"""
Per-rider request guard for ride creation.

A rider double-tapping "request ride" sends two creates that would both
see "no active ride" before either inserts.  ``RiderRequestLock`` holds a
short-lived Redis key per rider for the duration of one create, so the
second request fails fast with a 409.  The partial unique index on
``rides`` still decides the outcome when Redis is disabled or the key
expires mid-request.

The key value is a per-holder token; release deletes the key only while
it still carries that token, so a holder whose TTL lapsed cannot free a
key that a later request now owns.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis

from ridecore.domain.errors import ConflictError

logger = logging.getLogger(__name__)

# KEYS[1] = lock key, ARGV[1] = holder token
COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RiderRequestLock:
    def __init__(self, client: aioredis.Redis, rider_id: str, ttl_seconds: int = 10):
        self.redis = client
        self.rider_id = rider_id
        self.key = f"lock:rider:{rider_id}:create-ride"
        self.ttl = ttl_seconds
        self.token = uuid.uuid4().hex

    async def acquire(self) -> bool:
        return bool(await self.redis.set(self.key, self.token, nx=True, ex=self.ttl))

    async def release(self) -> bool:
        """True when this holder still owned the key and removed it."""
        return bool(await self.redis.eval(COMPARE_AND_DELETE, 1, self.key, self.token))

    async def __aenter__(self) -> "RiderRequestLock":
        if not await self.acquire():
            raise ConflictError("Another request for this rider is in progress")
        return self

    async def __aexit__(self, *exc_info) -> None:
        if not await self.release():
            logger.warning(
                f"Create-ride lock for rider {self.rider_id} expired before release"
            )


def rider_lock(client: aioredis.Redis, rider_id: str, ttl_seconds: int) -> RiderRequestLock:
    return RiderRequestLock(client, rider_id, ttl_seconds)
