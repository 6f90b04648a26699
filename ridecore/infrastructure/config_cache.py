"""
Read-through Redis cache for pricing configuration.

Fare slabs and surge rules change rarely and are read on every accept, so
they are cached as one JSON document with a TTL.  Admin edits call
:meth:`PricingConfigCache.invalidate`.  Promotions are never cached:
usage caps are always checked against the row being written.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .repositories import PricingConfigRepository
from ridecore.domain.entities import FareSlab, SurgeRule

logger = logging.getLogger(__name__)

CACHE_KEY = "pricing:config:v1"


def _slab_to_dict(slab: FareSlab) -> dict[str, Any]:
    return {
        "id": slab.id,
        "vehicle_type": slab.vehicle_type,
        "distance_from": str(slab.distance_from),
        "distance_to": str(slab.distance_to),
        "base_fare": str(slab.base_fare),
        "per_unit_rate": str(slab.per_unit_rate),
    }


def _rule_to_dict(rule: SurgeRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "title": rule.title,
        "days": list(rule.days),
        "start_time": rule.start_time,
        "end_time": rule.end_time,
        "distance_from": str(rule.distance_from),
        "distance_to": str(rule.distance_to),
        "multiplier": str(rule.multiplier),
    }


def _slab_from_dict(data: dict[str, Any]) -> FareSlab:
    return FareSlab(
        id=data["id"],
        vehicle_type=data["vehicle_type"],
        distance_from=Decimal(data["distance_from"]),
        distance_to=Decimal(data["distance_to"]),
        base_fare=Decimal(data["base_fare"]),
        per_unit_rate=Decimal(data["per_unit_rate"]),
    )


def _rule_from_dict(data: dict[str, Any]) -> SurgeRule:
    return SurgeRule(
        id=data["id"],
        title=data["title"],
        days=tuple(data["days"]),
        start_time=data["start_time"],
        end_time=data["end_time"],
        distance_from=Decimal(data["distance_from"]),
        distance_to=Decimal(data["distance_to"]),
        multiplier=Decimal(data["multiplier"]),
    )


class PricingConfigCache:
    def __init__(
        self,
        repository: PricingConfigRepository,
        client: Optional[aioredis.Redis] = None,
        ttl_seconds: int = 300,
    ):
        self.repository = repository
        self.redis = client
        self.ttl = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.redis is not None and self.ttl > 0

    async def load(self) -> tuple[list[FareSlab], list[SurgeRule]]:
        cached = await self._read()
        if cached is not None:
            return cached

        slabs = await self.repository.active_fare_slabs()
        rules = await self.repository.active_surge_rules()
        await self._write(slabs, rules)
        return slabs, rules

    async def invalidate(self) -> None:
        if self.redis is None:
            return
        await self.redis.delete(CACHE_KEY)
        logger.info("Pricing configuration cache invalidated")

    async def _read(self) -> Optional[tuple[list[FareSlab], list[SurgeRule]]]:
        if not self.enabled:
            return None
        try:
            raw = await self.redis.get(CACHE_KEY)
        except RedisError as e:
            logger.warning(f"Pricing cache read failed, using database: {e}")
            return None
        if not raw:
            return None
        data = json.loads(raw)
        return (
            [_slab_from_dict(s) for s in data["slabs"]],
            [_rule_from_dict(r) for r in data["surge_rules"]],
        )

    async def _write(self, slabs: list[FareSlab], rules: list[SurgeRule]) -> None:
        if not self.enabled:
            return
        payload = {
            "slabs": [_slab_to_dict(s) for s in slabs],
            "surge_rules": [_rule_to_dict(r) for r in rules],
        }
        try:
            await self.redis.setex(CACHE_KEY, self.ttl, json.dumps(payload))
        except RedisError as e:
            logger.warning(f"Pricing cache write failed: {e}")
