"""Pydantic request / response schemas for the REST API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ridecore.domain.entities import PromoApplication, Promotion, Ride


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(CamelModel):
    address: str
    coordinates: list[float] = Field(..., description="[lng, lat]")


class RideCreateRequest(CamelModel):
    pickup: LocationIn
    drops: list[LocationIn]
    vehicle_type: str
    payment_mode: Optional[str] = None


class StartRideRequest(CamelModel):
    # Left as typed; compared against the stored pin without normalisation.
    pin: Optional[Union[str, int]] = None


class CompleteRideRequest(CamelModel):
    payment_mode: Optional[str] = None


class CancelRideRequest(CamelModel):
    cancelled_by: str
    reason: str = ""


class ReassignDriverRequest(CamelModel):
    new_driver_id: str


class CouponRequest(CamelModel):
    code: str
    ride_id: str


# ── Responses ─────────────────────────────────────────────────────────


class LocationOut(CamelModel):
    address: str
    coordinates: list[float]


class PromoDetails(CamelModel):
    promotion_id: str
    code: str
    type: str
    value: float
    discount: float
    min_ride_amount: float
    max_discount_amount: Optional[float] = None
    applied_at: datetime

    @classmethod
    def from_application(cls, application: PromoApplication) -> "PromoDetails":
        return cls(
            promotion_id=application.promotion_id,
            code=application.code,
            type=application.kind.value,
            value=float(application.value),
            discount=float(application.discount),
            min_ride_amount=float(application.min_ride_amount),
            max_discount_amount=(
                float(application.max_discount_amount)
                if application.max_discount_amount is not None
                else None
            ),
            applied_at=application.applied_at,
        )


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


class RideResponse(CamelModel):
    id: str
    rider_id: str
    driver_id: Optional[str] = None
    pickup: LocationOut
    drops: list[LocationOut]
    vehicle_type: str
    status: str
    pin: Optional[str] = None
    is_pin_verified: bool = False
    fare: Optional[float] = None
    distance: Optional[float] = None
    surge_multiplier: Optional[float] = None
    penalty_amount: float = 0
    promo_code: Optional[str] = None
    promo_application: Optional[PromoDetails] = None
    payment_mode: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    driver_reached_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    @classmethod
    def from_ride(cls, ride: Ride, include_pin: bool = True) -> "RideResponse":
        return cls(
            id=ride.id,
            rider_id=ride.rider_id,
            driver_id=ride.driver_id,
            pickup=LocationOut(**ride.pickup.to_dict()),
            drops=[LocationOut(**d.to_dict()) for d in ride.drops],
            vehicle_type=ride.vehicle_type,
            status=ride.status.value,
            pin=ride.pin if include_pin else None,
            is_pin_verified=ride.is_pin_verified,
            fare=_money(ride.fare),
            distance=_money(ride.distance_km),
            surge_multiplier=_money(ride.surge_multiplier),
            penalty_amount=float(ride.penalty_amount),
            promo_code=ride.promo_code,
            promo_application=(
                PromoDetails.from_application(ride.promo_application)
                if ride.promo_application
                else None
            ),
            payment_mode=ride.payment_mode.value if ride.payment_mode else None,
            cancelled_by=ride.cancelled_by.value if ride.cancelled_by else None,
            cancellation_reason=ride.cancellation_reason,
            requested_at=ride.requested_at,
            started_at=ride.started_at,
            driver_reached_at=ride.driver_reached_at,
            completed_at=ride.completed_at,
            cancelled_at=ride.cancelled_at,
            duration_minutes=ride.duration_minutes,
        )


class CouponApplyResponse(CamelModel):
    discount: float
    final_fare: float
    promo_details: PromoDetails


class PromotionResponse(CamelModel):
    code: str
    type: str
    value: float
    description: Optional[str] = None
    valid_from: datetime
    valid_to: datetime
    min_ride_amount: float
    max_discount_amount: Optional[float] = None
    usage_limit_per_user: int

    @classmethod
    def from_promotion(cls, promotion: Promotion) -> "PromotionResponse":
        return cls(
            code=promotion.code,
            type=promotion.kind.value,
            value=float(promotion.value),
            description=promotion.description,
            valid_from=promotion.valid_from,
            valid_to=promotion.valid_to,
            min_ride_amount=float(promotion.min_ride_amount),
            max_discount_amount=_money(promotion.max_discount_amount),
            usage_limit_per_user=promotion.usage_limit_per_user,
        )


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    currentStatus: Optional[str] = None
    action: Optional[str] = None
