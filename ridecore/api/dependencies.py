"""FastAPI dependency injection helpers."""

from typing import Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.domain.errors import PermissionDeniedError
from ridecore.infrastructure.database import async_session_factory
from ridecore.infrastructure.redis_client import get_redis
from ridecore.services.notifications import Notifier
from ridecore.services.promotions import PromotionService
from ridecore.services.rides import RideLifecycleService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_redis_client() -> Optional[aioredis.Redis]:
    return await get_redis()


def get_notifier(request: Request) -> Notifier:
    """The notifier built by the app lifespan."""
    return request.app.state.notifier


def get_ride_service(
    db: AsyncSession = Depends(get_db),
    redis_client: Optional[aioredis.Redis] = Depends(get_redis_client),
    notifier: Notifier = Depends(get_notifier),
) -> RideLifecycleService:
    return RideLifecycleService(db, notifier, redis_client)


def get_promotion_service(db: AsyncSession = Depends(get_db)) -> PromotionService:
    return PromotionService(db)


# ── Caller identity (set by the upstream auth layer) ──────────────────


def _require(value: Optional[str], header: str) -> str:
    if not value:
        raise PermissionDeniedError(f"Missing {header} header", status_code=401)
    return value


def current_rider(x_rider_id: Optional[str] = Header(default=None, alias="X-Rider-Id")) -> str:
    return _require(x_rider_id, "X-Rider-Id")


def current_driver(
    x_driver_id: Optional[str] = Header(default=None, alias="X-Driver-Id"),
) -> str:
    return _require(x_driver_id, "X-Driver-Id")


def current_admin(x_admin_id: Optional[str] = Header(default=None, alias="X-Admin-Id")) -> str:
    return _require(x_admin_id, "X-Admin-Id")


def current_caller(
    x_rider_id: Optional[str] = Header(default=None, alias="X-Rider-Id"),
    x_driver_id: Optional[str] = Header(default=None, alias="X-Driver-Id"),
    x_admin_id: Optional[str] = Header(default=None, alias="X-Admin-Id"),
) -> tuple[str, str]:
    """``(role, id)`` of whichever identity header is present."""
    for role, value in (
        ("admin", x_admin_id),
        ("driver", x_driver_id),
        ("rider", x_rider_id),
    ):
        if value:
            return role, value
    raise PermissionDeniedError("Missing caller identity header", status_code=401)
