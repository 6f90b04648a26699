"""
Promotion rules.

Pure checks and arithmetic only; persistence and the atomic usage
accounting live in :mod:`ridecore.services.promotions`.  The service runs
:func:`check_usage_caps` against the exact ``used_by`` list it is about to
compare-and-swap, so a cap can never be passed on a stale read.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from .entities import PromoApplication, Promotion, to_money, utc
from .enums import PromotionKind
from .errors import LimitExceededError, NotFoundError, ValidationError

HUNDRED = Decimal("100")


def normalize_code(code: str) -> str:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError("Promo code is required")
    return normalized


def is_currently_valid(promotion: Promotion, now: datetime) -> bool:
    return (
        promotion.is_active
        and utc(promotion.valid_from) <= utc(now) <= utc(promotion.valid_to)
    )


def check_eligibility(promotion: Promotion, fare: Decimal, now: datetime) -> None:
    """Validity window, active flag and minimum ride amount."""
    if not is_currently_valid(promotion, now):
        raise NotFoundError("Invalid or expired promo code")
    if fare < promotion.min_ride_amount:
        raise ValidationError(
            f"Minimum ride amount for this promo is {promotion.min_ride_amount}",
            extra={"minRideAmount": str(promotion.min_ride_amount)},
        )


def check_usage_caps(promotion: Promotion, rider_id: str) -> None:
    if promotion.usage_count(rider_id) >= promotion.usage_limit_per_user:
        raise LimitExceededError("You have already used this promo code")
    if (
        promotion.global_usage_limit is not None
        and len(promotion.used_by) >= promotion.global_usage_limit
    ):
        raise LimitExceededError("Promo code usage limit reached")


def compute_discount(promotion: Promotion, fare: Decimal) -> Decimal:
    if promotion.kind == PromotionKind.FLAT:
        discount = Decimal(promotion.value)
    else:
        discount = Decimal(fare) * Decimal(promotion.value) / HUNDRED
    if promotion.max_discount_amount is not None:
        discount = min(discount, Decimal(promotion.max_discount_amount))
    # Fare never goes negative.
    discount = min(discount, Decimal(fare))
    return to_money(max(discount, Decimal("0")))


def build_application(
    promotion: Promotion, fare: Decimal, now: datetime
) -> PromoApplication:
    return PromoApplication(
        promotion_id=promotion.id,
        code=promotion.code,
        kind=promotion.kind,
        value=Decimal(promotion.value),
        discount=compute_discount(promotion, fare),
        min_ride_amount=Decimal(promotion.min_ride_amount),
        max_discount_amount=promotion.max_discount_amount,
        applied_at=now,
    )


def with_usage(used_by: list[str], rider_id: str) -> list[str]:
    return [*used_by, rider_id]


def without_one_usage(used_by: list[str], rider_id: str) -> list[str]:
    """Drop exactly one occurrence of *rider_id*; unchanged if absent."""
    remaining = list(used_by)
    if rider_id in remaining:
        remaining.remove(rider_id)
    return remaining
