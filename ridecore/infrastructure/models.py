"""
SQLAlchemy ORM models  (PostgreSQL in production, SQLite in tests).

Tables
------
* ``riders``       -- local mirror of rider identities (existence + active flag)
* ``drivers``      -- local mirror of driver identities and status
* ``rides``        -- the ride aggregate with its frozen fare snapshot
* ``fare_slabs``   -- distance-tiered rate cards per vehicle type
* ``surge_rules``  -- day / time / distance windows with a multiplier
* ``promotions``   -- discount codes with usage accounting

Indexes
-------
* **Partial unique** on ``rides(rider_id)`` for non-terminal statuses: at
  most one active ride per rider, enforced by the database.
* **B-Tree** on ``status``, ``rider_id``, ``driver_id`` and the
  configuration lookup columns.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)

from .database import Base
from ridecore.domain.enums import (
    CancelActor,
    DriverStatus,
    PaymentMode,
    PromotionKind,
    RideStatus,
)

ACTIVE_RIDE_PREDICATE = "status IN ('requested', 'accepted', 'ongoing')"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls, name: str) -> Enum:
    # Stored as the lower-case value, not the member name.
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class RiderModel(Base):
    __tablename__ = "riders"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), nullable=True)
    vehicle_type = Column(String(20), nullable=True)
    status = Column(
        _enum(DriverStatus, "driver_status"),
        default=DriverStatus.ACTIVE,
        nullable=False,
    )
    rides_completed = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    __table_args__ = (Index("idx_drivers_status", "status"),)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=_uuid)
    rider_id = Column(String(36), ForeignKey("riders.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)

    # {address, coordinates: [lng, lat]}; drops is an ordered list of the same
    pickup = Column(JSON, nullable=False)
    drops = Column(JSON, nullable=False)
    vehicle_type = Column(String(20), nullable=False)

    status = Column(
        _enum(RideStatus, "ride_status"),
        default=RideStatus.REQUESTED,
        nullable=False,
    )
    pin = Column(String(6), nullable=False)
    is_pin_verified = Column(Boolean, default=False, nullable=False)

    # Fare snapshot, frozen at acceptance
    fare = Column(Numeric(12, 2), nullable=True)
    distance_km = Column(Numeric(10, 3), nullable=True)
    surge_multiplier = Column(Numeric(6, 2), nullable=True)
    penalty_amount = Column(Numeric(12, 2), default=0, nullable=False)
    penalty_carried = Column(Boolean, default=False, nullable=False)

    promo_code = Column(String(40), nullable=True)
    promo_application = Column(JSON(none_as_null=True), nullable=True)

    payment_mode = Column(_enum(PaymentMode, "payment_mode"), nullable=True)
    cancelled_by = Column(_enum(CancelActor, "cancel_actor"), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)

    requested_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    driver_reached_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (
        Index(
            "uq_rides_rider_active",
            "rider_id",
            unique=True,
            sqlite_where=text(ACTIVE_RIDE_PREDICATE),
            postgresql_where=text(ACTIVE_RIDE_PREDICATE),
        ),
        Index("idx_rides_status", "status"),
        Index("idx_rides_rider", "rider_id"),
        Index("idx_rides_driver", "driver_id"),
    )


class FareSlabModel(Base):
    __tablename__ = "fare_slabs"

    id = Column(String(36), primary_key=True, default=_uuid)
    vehicle_type = Column(String(20), nullable=False)
    distance_from = Column(Numeric(10, 3), nullable=False)
    distance_to = Column(Numeric(10, 3), nullable=False)
    base_fare = Column(Numeric(10, 2), nullable=False)
    per_unit_rate = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("idx_fare_slabs_vehicle", "vehicle_type", "is_active"),)


class SurgeRuleModel(Base):
    __tablename__ = "surge_rules"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(120), nullable=False)
    days = Column(JSON, nullable=False, default=lambda: [0, 1, 2, 3, 4, 5, 6])
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    distance_from = Column(Numeric(10, 3), default=0, nullable=False)
    distance_to = Column(Numeric(10, 3), default=9999, nullable=False)
    multiplier = Column(Numeric(6, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("idx_surge_rules_active", "is_active"),)


class PromotionModel(Base):
    __tablename__ = "promotions"

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(40), unique=True, nullable=False)
    kind = Column(_enum(PromotionKind, "promotion_kind"), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    description = Column(String(500), nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_to = Column(DateTime(timezone=True), nullable=False)
    min_ride_amount = Column(Numeric(12, 2), default=0, nullable=False)
    usage_limit_per_user = Column(Integer, default=1, nullable=False)
    global_usage_limit = Column(Integer, nullable=True)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    # Multiset of rider ids; one entry per use
    used_by = Column(JSON, nullable=False, default=list)
    # Bumped on every usage write; writes compare-and-swap on it
    version = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (Index("idx_promotions_active", "is_active"),)
