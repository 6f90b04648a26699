"""
Admin / observability endpoints
===============================

GET  /admin/health                    -- simple health check
POST /admin/pricing-cache/invalidate  -- drop cached fare slabs and surge rules
"""

from typing import Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.api.dependencies import current_admin, get_db, get_redis_client
from ridecore.api.middleware import limiter
from ridecore.api.schemas import HealthResponse
from ridecore.config import settings
from ridecore.infrastructure.config_cache import PricingConfigCache
from ridecore.infrastructure.repositories import PricingConfigRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.post(
    "/pricing-cache/invalidate",
    status_code=204,
    summary="Invalidate the pricing configuration cache",
)
@limiter.limit(settings.rate_limit)
async def invalidate_pricing_cache(
    request: Request,
    admin_id: str = Depends(current_admin),
    db: AsyncSession = Depends(get_db),
    redis_client: Optional[aioredis.Redis] = Depends(get_redis_client),
):
    cache = PricingConfigCache(PricingConfigRepository(db), redis_client)
    await cache.invalidate()
    return Response(status_code=204)
