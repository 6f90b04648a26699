"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Reads return domain entities; every write
that races with another request is a single conditional ``UPDATE ...
WHERE`` whose row count tells the caller whether it won.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DriverModel,
    FareSlabModel,
    PromotionModel,
    RideModel,
    RiderModel,
    SurgeRuleModel,
)
from ridecore.domain.entities import (
    Driver,
    FareSlab,
    Location,
    PromoApplication,
    Promotion,
    Ride,
    Rider,
    SurgeRule,
    utc,
)
from ridecore.domain.enums import ACTIVE_STATUSES, RideStatus

# Marks an expectation the conditional update should not check.
ANY = object()


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


# ── Mapping ───────────────────────────────────────────────────────────


def ride_to_entity(model: RideModel) -> Ride:
    return Ride(
        id=model.id,
        rider_id=model.rider_id,
        driver_id=model.driver_id,
        pickup=Location.from_dict(model.pickup),
        drops=[Location.from_dict(d) for d in model.drops],
        vehicle_type=model.vehicle_type,
        status=RideStatus(model.status),
        pin=model.pin,
        is_pin_verified=model.is_pin_verified,
        fare=_decimal(model.fare),
        distance_km=_decimal(model.distance_km),
        surge_multiplier=_decimal(model.surge_multiplier),
        penalty_amount=_decimal(model.penalty_amount) or Decimal("0"),
        penalty_carried=model.penalty_carried,
        promo_code=model.promo_code,
        promo_application=(
            PromoApplication.from_dict(model.promo_application)
            if model.promo_application
            else None
        ),
        payment_mode=model.payment_mode,
        cancelled_by=model.cancelled_by,
        cancellation_reason=model.cancellation_reason,
        requested_at=utc(model.requested_at),
        started_at=utc(model.started_at),
        driver_reached_at=utc(model.driver_reached_at),
        completed_at=utc(model.completed_at),
        cancelled_at=utc(model.cancelled_at),
        duration_minutes=model.duration_minutes,
    )


def ride_values(ride: Ride) -> dict[str, Any]:
    """Column values for every field a transition may change.

    ``updated_at`` is left to the column's ``onupdate``.
    """
    return {
        "driver_id": ride.driver_id,
        "status": ride.status,
        "is_pin_verified": ride.is_pin_verified,
        "fare": ride.fare,
        "distance_km": ride.distance_km,
        "surge_multiplier": ride.surge_multiplier,
        "penalty_amount": ride.penalty_amount,
        "penalty_carried": ride.penalty_carried,
        "promo_code": ride.promo_code,
        "promo_application": (
            ride.promo_application.to_dict() if ride.promo_application else None
        ),
        "payment_mode": ride.payment_mode,
        "cancelled_by": ride.cancelled_by,
        "cancellation_reason": ride.cancellation_reason,
        "started_at": ride.started_at,
        "driver_reached_at": ride.driver_reached_at,
        "completed_at": ride.completed_at,
        "cancelled_at": ride.cancelled_at,
        "duration_minutes": ride.duration_minutes,
    }


def promotion_to_entity(model: PromotionModel) -> Promotion:
    return Promotion(
        id=model.id,
        code=model.code,
        kind=model.kind,
        value=_decimal(model.value),
        description=model.description,
        valid_from=utc(model.valid_from),
        valid_to=utc(model.valid_to),
        min_ride_amount=_decimal(model.min_ride_amount) or Decimal("0"),
        usage_limit_per_user=model.usage_limit_per_user,
        global_usage_limit=model.global_usage_limit,
        max_discount_amount=_decimal(model.max_discount_amount),
        used_by=list(model.used_by or []),
        is_active=model.is_active,
        version=model.version,
    )


# ── Repositories ──────────────────────────────────────────────────────


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: Ride) -> Ride:
        model = RideModel(
            rider_id=ride.rider_id,
            pickup=ride.pickup.to_dict(),
            drops=[d.to_dict() for d in ride.drops],
            vehicle_type=ride.vehicle_type,
            status=ride.status,
            pin=ride.pin,
            penalty_amount=ride.penalty_amount,
            payment_mode=ride.payment_mode,
            requested_at=ride.requested_at,
        )
        self.session.add(model)
        await self.session.flush()
        return ride_to_entity(model)

    async def get_by_id(self, ride_id: str) -> Optional[Ride]:
        # populate_existing: conditional updates bypass the identity map
        model = await self.session.get(RideModel, ride_id, populate_existing=True)
        return ride_to_entity(model) if model else None

    async def get_active_for_rider(self, rider_id: str) -> Optional[Ride]:
        return await self._first(
            select(RideModel).where(
                RideModel.rider_id == rider_id,
                RideModel.status.in_(ACTIVE_STATUSES),
            )
        )

    async def get_unsettled_penalty_ride(self, rider_id: str) -> Optional[Ride]:
        """Latest cancelled ride whose penalty has not moved to a new ride."""
        return await self._first(
            select(RideModel)
            .where(
                RideModel.rider_id == rider_id,
                RideModel.status == RideStatus.CANCELLED,
                RideModel.penalty_amount > 0,
                RideModel.penalty_carried.is_(False),
            )
            .order_by(desc(RideModel.cancelled_at))
        )

    async def get_latest_for_rider(self, rider_id: str) -> Optional[Ride]:
        return await self._first(
            select(RideModel)
            .where(RideModel.rider_id == rider_id)
            .order_by(desc(RideModel.requested_at))
        )

    async def list_for_rider(self, rider_id: str, limit: int = 50) -> list[Ride]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.rider_id == rider_id)
            .order_by(desc(RideModel.requested_at))
            .limit(limit)
        )
        return [ride_to_entity(m) for m in result.scalars().all()]

    async def list_for_driver(self, driver_id: str, limit: int = 50) -> list[Ride]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.driver_id == driver_id)
            .order_by(desc(RideModel.requested_at))
            .limit(limit)
        )
        return [ride_to_entity(m) for m in result.scalars().all()]

    async def compare_and_set(
        self,
        ride: Ride,
        *,
        expected_status: RideStatus,
        expected_driver_id: Any = ANY,
        expected_promo_code: Any = ANY,
    ) -> bool:
        """
        Write *ride* only if the stored row still matches what was read.

        ``None`` as an expectation means the column must be NULL.  Returns
        False when another request changed the row first.
        """
        stmt = update(RideModel).where(
            RideModel.id == ride.id, RideModel.status == expected_status
        )
        if expected_driver_id is not ANY:
            stmt = stmt.where(
                RideModel.driver_id.is_(None)
                if expected_driver_id is None
                else RideModel.driver_id == expected_driver_id
            )
        if expected_promo_code is not ANY:
            stmt = stmt.where(
                RideModel.promo_code.is_(None)
                if expected_promo_code is None
                else RideModel.promo_code == expected_promo_code
            )
        result = await self.session.execute(
            stmt.values(**ride_values(ride)).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount == 1

    async def mark_penalty_carried(self, ride_id: str) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.penalty_carried.is_(False))
            .values(penalty_carried=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _first(self, stmt) -> Optional[Ride]:
        result = await self.session.execute(
            stmt.limit(1).execution_options(populate_existing=True)
        )
        model = result.scalars().first()
        return ride_to_entity(model) if model else None


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: str) -> Optional[Driver]:
        model = await self.session.get(DriverModel, driver_id, populate_existing=True)
        if model is None:
            return None
        return Driver(
            id=model.id,
            name=model.name,
            status=model.status,
            vehicle_type=model.vehicle_type,
            phone=model.phone,
            rides_completed=model.rides_completed,
        )

    async def increment_rides_completed(self, driver_id: str) -> None:
        await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(rides_completed=DriverModel.rides_completed + 1)
            .execution_options(synchronize_session=False)
        )


class RiderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, rider_id: str) -> Optional[Rider]:
        model = await self.session.get(RiderModel, rider_id)
        if model is None:
            return None
        return Rider(
            id=model.id, name=model.name, is_active=model.is_active, phone=model.phone
        )


class PricingConfigRepository:
    """Read-only access to fare slabs and surge rules."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_fare_slabs(self) -> list[FareSlab]:
        result = await self.session.execute(
            select(FareSlabModel).where(FareSlabModel.is_active.is_(True))
        )
        return [
            FareSlab(
                id=m.id,
                vehicle_type=m.vehicle_type,
                distance_from=_decimal(m.distance_from),
                distance_to=_decimal(m.distance_to),
                base_fare=_decimal(m.base_fare),
                per_unit_rate=_decimal(m.per_unit_rate),
                is_active=m.is_active,
            )
            for m in result.scalars().all()
        ]

    async def active_surge_rules(self) -> list[SurgeRule]:
        result = await self.session.execute(
            select(SurgeRuleModel).where(SurgeRuleModel.is_active.is_(True))
        )
        return [
            SurgeRule(
                id=m.id,
                title=m.title,
                days=tuple(m.days),
                start_time=m.start_time,
                end_time=m.end_time,
                distance_from=_decimal(m.distance_from),
                distance_to=_decimal(m.distance_to),
                multiplier=_decimal(m.multiplier),
                is_active=m.is_active,
            )
            for m in result.scalars().all()
        ]


class PromotionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_code(self, code: str) -> Optional[Promotion]:
        result = await self.session.execute(
            select(PromotionModel)
            .where(PromotionModel.code == code.upper())
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return promotion_to_entity(model) if model else None

    async def get_by_id(self, promotion_id: str) -> Optional[Promotion]:
        model = await self.session.get(
            PromotionModel, promotion_id, populate_existing=True
        )
        return promotion_to_entity(model) if model else None

    async def list_active(self, now: datetime) -> list[Promotion]:
        result = await self.session.execute(
            select(PromotionModel)
            .where(
                PromotionModel.is_active.is_(True),
                PromotionModel.valid_from <= now,
                PromotionModel.valid_to >= now,
            )
            .order_by(PromotionModel.valid_to)
        )
        return [promotion_to_entity(m) for m in result.scalars().all()]

    async def swap_usage(
        self, promotion_id: str, expected_version: int, used_by: list[str]
    ) -> bool:
        """Replace ``used_by`` only if nobody wrote since *expected_version*."""
        result = await self.session.execute(
            update(PromotionModel)
            .where(
                PromotionModel.id == promotion_id,
                PromotionModel.version == expected_version,
            )
            .values(used_by=used_by, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
