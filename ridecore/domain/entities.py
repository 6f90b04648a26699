"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: every mutating method asks
  :func:`lifecycle.next_status` for the target status before touching any
  field, so an illegal call leaves the entity unchanged.
- ``PromoApplication`` is a frozen snapshot: later edits to a
  ``Promotion`` never change what a ride was charged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from . import lifecycle
from .enums import (
    CancelActor,
    DriverStatus,
    PaymentMode,
    PromotionKind,
    RideAction,
    RideStatus,
)
from .errors import ConflictError, ValidationError

MONEY_QUANTUM = Decimal("0.01")
MIN_CANCEL_REASON_LENGTH = 3


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite hands these back) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    address: str
    lng: float
    lat: float

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.lng, self.lat)

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "coordinates": [self.lng, self.lat]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        lng, lat = data["coordinates"]
        return cls(address=data["address"], lng=lng, lat=lat)


@dataclass(frozen=True)
class FareQuote:
    """Everything frozen onto a ride at acceptance."""

    distance_km: Decimal
    base_fare: Decimal
    per_unit_rate: Decimal
    slab_fare: Decimal
    penalty: Decimal
    surge_multiplier: Decimal
    fare: Decimal


@dataclass(frozen=True)
class PromoApplication:
    promotion_id: str
    code: str
    kind: PromotionKind
    value: Decimal
    discount: Decimal
    min_ride_amount: Decimal
    max_discount_amount: Optional[Decimal]
    applied_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "promotionId": self.promotion_id,
            "code": self.code,
            "type": self.kind.value,
            "value": str(self.value),
            "discount": str(self.discount),
            "minRideAmount": str(self.min_ride_amount),
            "maxDiscountAmount": (
                str(self.max_discount_amount)
                if self.max_discount_amount is not None
                else None
            ),
            "appliedAt": self.applied_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromoApplication":
        max_discount = data.get("maxDiscountAmount")
        return cls(
            promotion_id=data["promotionId"],
            code=data["code"],
            kind=PromotionKind(data["type"]),
            value=Decimal(data["value"]),
            discount=Decimal(data["discount"]),
            min_ride_amount=Decimal(data["minRideAmount"]),
            max_discount_amount=Decimal(max_discount) if max_discount is not None else None,
            applied_at=datetime.fromisoformat(data["appliedAt"]),
        )


# ── Configuration entities ────────────────────────────────────────────


@dataclass(frozen=True)
class FareSlab:
    vehicle_type: str
    distance_from: Decimal
    distance_to: Decimal
    base_fare: Decimal
    per_unit_rate: Decimal
    is_active: bool = True
    id: Optional[str] = None

    def contains(self, distance_km: Decimal) -> bool:
        return self.distance_from <= distance_km <= self.distance_to

    @property
    def width(self) -> Decimal:
        return self.distance_to - self.distance_from


@dataclass(frozen=True)
class SurgeRule:
    title: str
    days: tuple[int, ...]
    start_time: str
    end_time: str
    multiplier: Decimal
    distance_from: Decimal = Decimal("0")
    distance_to: Decimal = Decimal("9999")
    is_active: bool = True
    id: Optional[str] = None

    def matches(self, day: int, hhmm: str, distance_km: Decimal) -> bool:
        return (
            self.is_active
            and day in self.days
            and self.start_time <= hhmm <= self.end_time
            and self.distance_from <= distance_km <= self.distance_to
        )


@dataclass
class Promotion:
    id: str
    code: str
    kind: PromotionKind
    value: Decimal
    valid_from: datetime
    valid_to: datetime
    min_ride_amount: Decimal = Decimal("0")
    usage_limit_per_user: int = 1
    global_usage_limit: Optional[int] = None
    max_discount_amount: Optional[Decimal] = None
    used_by: list[str] = field(default_factory=list)
    is_active: bool = True
    description: Optional[str] = None
    version: int = 0

    def usage_count(self, rider_id: str) -> int:
        return sum(1 for used in self.used_by if used == rider_id)


# ── Participants ──────────────────────────────────────────────────────


@dataclass
class Driver:
    id: str
    name: str
    status: DriverStatus = DriverStatus.ACTIVE
    vehicle_type: Optional[str] = None
    phone: Optional[str] = None
    rides_completed: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == DriverStatus.ACTIVE


@dataclass
class Rider:
    id: str
    name: str
    is_active: bool = True
    phone: Optional[str] = None


# ── Ride aggregate ────────────────────────────────────────────────────


@dataclass
class Ride:
    rider_id: str
    pickup: Location
    drops: list[Location]
    vehicle_type: str
    pin: str
    id: Optional[str] = None
    driver_id: Optional[str] = None
    status: RideStatus = RideStatus.REQUESTED
    is_pin_verified: bool = False
    fare: Optional[Decimal] = None
    distance_km: Optional[Decimal] = None
    surge_multiplier: Optional[Decimal] = None
    penalty_amount: Decimal = Decimal("0")
    penalty_carried: bool = False
    promo_code: Optional[str] = None
    promo_application: Optional[PromoApplication] = None
    payment_mode: Optional[PaymentMode] = None
    cancelled_by: Optional[CancelActor] = None
    cancellation_reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    driver_reached_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    def copy(self) -> "Ride":
        return replace(self, drops=list(self.drops))

    # -- driver-side transitions ------------------------------------

    def accept(self, driver_id: str, quote: FareQuote, now: datetime) -> None:
        target = lifecycle.next_status(self.status, RideAction.ACCEPT)
        if self.driver_id is not None:
            raise ConflictError(
                "Ride already assigned to a driver",
                current_status=self.status.value,
                action=RideAction.ACCEPT.value,
            )
        self._freeze_fare(quote)
        self.driver_id = driver_id
        self.started_at = now
        self.status = target

    def reject(self) -> None:
        self.status = lifecycle.next_status(self.status, RideAction.REJECT)

    def mark_driver_reached(self, driver_id: str, now: datetime) -> None:
        target = lifecycle.next_status(self.status, RideAction.MARK_REACHED)
        self._require_driver(driver_id, RideAction.MARK_REACHED)
        self.driver_reached_at = now
        self.status = target

    def start(self, driver_id: str, pin: Any, now: datetime) -> None:
        target = lifecycle.next_status(self.status, RideAction.START)
        self._require_driver(driver_id, RideAction.START)
        if self.driver_reached_at is None:
            raise ConflictError(
                "Driver must reach the pickup point before starting the ride",
                current_status=self.status.value,
                action=RideAction.START.value,
                status_code=400,
            )
        # Compared as typed: no stripping, no integer normalisation.
        if pin is None or str(pin) != str(self.pin):
            raise ValidationError(
                "Pin is incorrect",
                current_status=self.status.value,
                action=RideAction.START.value,
            )
        self.is_pin_verified = True
        self.status = target

    def complete(
        self, driver_id: str, payment_mode: PaymentMode, now: datetime
    ) -> None:
        target = lifecycle.next_status(self.status, RideAction.COMPLETE)
        self._require_driver(driver_id, RideAction.COMPLETE)
        self.payment_mode = PaymentMode(payment_mode)
        self.completed_at = now
        if self.started_at is not None:
            elapsed = utc(now) - utc(self.started_at)
            self.duration_minutes = round(elapsed.total_seconds() / 60)
        self.status = target

    # -- rider / admin transitions ----------------------------------

    def cancel(
        self,
        actor: CancelActor,
        reason: str,
        now: datetime,
        penalty_rate: Decimal,
    ) -> None:
        reason = (reason or "").strip()
        if len(reason) < MIN_CANCEL_REASON_LENGTH:
            raise ValidationError(
                "Cancellation reason is required and must be at least "
                f"{MIN_CANCEL_REASON_LENGTH} characters long"
            )
        try:
            actor = CancelActor(actor)
        except ValueError:
            raise ValidationError(
                "cancelledBy must be one of: rider, driver, admin"
            ) from None
        target = lifecycle.next_status(self.status, RideAction.CANCEL)
        if self.fare is not None:
            self.penalty_amount = to_money(self.fare * penalty_rate)
        self.cancelled_by = actor
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.status = target

    def reassign(
        self, new_driver_id: str, quote: Optional[FareQuote], now: datetime
    ) -> None:
        target = lifecycle.next_status(self.status, RideAction.REASSIGN)
        if self.fare is None:
            if quote is None:
                raise ValueError("an unpriced ride needs a fare quote to be assigned")
            self._freeze_fare(quote)
            self.started_at = now
        self.driver_id = new_driver_id
        self.driver_reached_at = None
        self.status = target

    # -- promotions --------------------------------------------------

    def ensure_promotion_allowed(self) -> None:
        if self.status != RideStatus.ACCEPTED or self.fare is None:
            raise ConflictError(
                "Promo codes can only be applied to an accepted ride",
                current_status=self.status.value,
                action="apply_promotion",
            )
        if self.promo_application is not None:
            raise ConflictError(
                "Already applied promo code",
                current_status=self.status.value,
                action="apply_promotion",
                status_code=400,
            )

    def apply_promotion(self, application: PromoApplication) -> None:
        self.ensure_promotion_allowed()
        self.fare = self.fare - application.discount
        self.promo_code = application.code
        self.promo_application = application

    def remove_promotion(self, code: str) -> PromoApplication:
        if self.status != RideStatus.ACCEPTED:
            raise ConflictError(
                "Promo codes can only be removed before the ride starts",
                current_status=self.status.value,
                action="remove_promotion",
            )
        application = self.promo_application
        if application is None or application.code != code:
            raise ConflictError(
                "Promo was not applied or already removed",
                current_status=self.status.value,
                action="remove_promotion",
                status_code=400,
            )
        self.fare = self.fare + application.discount
        self.promo_code = None
        self.promo_application = None
        return application

    # -- helpers -----------------------------------------------------

    def _freeze_fare(self, quote: FareQuote) -> None:
        self.distance_km = quote.distance_km
        self.surge_multiplier = quote.surge_multiplier
        self.fare = quote.fare
        self.penalty_amount = Decimal("0")

    def _require_driver(self, driver_id: str, action: RideAction) -> None:
        if self.driver_id != driver_id:
            raise ConflictError(
                "Ride is assigned to another driver",
                current_status=self.status.value,
                action=action.value,
            )
