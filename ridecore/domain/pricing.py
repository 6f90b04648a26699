"""
Fare Pipeline  (Strategy Pattern)
=================================

Formula
-------
Fare = round( (Base_Fare + Distance x Per_Unit_Rate + Prior_Penalty) x Surge_Multiplier )

* **Base_Fare / Per_Unit_Rate** come from the narrowest active fare slab of
  the vehicle type containing the distance, else from ``DEFAULT_FARES``.
* **Surge_Multiplier** is the highest multiplier among active surge rules
  matching the local day, "HH:MM" and distance; 1 when none match.
* **Prior_Penalty** is an unsettled cancellation penalty carried onto the
  ride at request time.

All arithmetic is ``Decimal``; only the final fare is rounded (ROUND_HALF_UP),
so the same inputs always produce the same fare.

Complexity: O(S + R) per quote for S slabs and R surge rules.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from .entities import FareQuote, FareSlab, SurgeRule

WHOLE_UNIT = Decimal("1")
NO_SURGE = Decimal("1")

# vehicle type -> (base fare, per-km rate)
DEFAULT_FARES: dict[str, tuple[Decimal, Decimal]] = {
    "suv": (Decimal("100"), Decimal("18")),
    "sedan": (Decimal("80"), Decimal("15")),
    "car": (Decimal("70"), Decimal("12")),
    "auto": (Decimal("40"), Decimal("10")),
    "bike": (Decimal("30"), Decimal("7")),
    "scooter": (Decimal("25"), Decimal("6")),
}
UNKNOWN_VEHICLE_FARE = (Decimal("50"), Decimal("10"))


def round_whole(value: Decimal) -> Decimal:
    return value.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def local_day_and_time(at: datetime, tz: str) -> tuple[int, str]:
    """Return ``(day, "HH:MM")`` in *tz*, with day 0 = Sunday."""
    local = at.astimezone(ZoneInfo(tz))
    return (local.weekday() + 1) % 7, local.strftime("%H:%M")


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, contribution: Decimal, penalty: Decimal) -> Decimal: ...


class StandardPricing(PricingStrategy):
    def calculate(self, contribution: Decimal, penalty: Decimal) -> Decimal:
        return round_whole(contribution + penalty)


class SurgePricing(PricingStrategy):
    def __init__(self, surge_multiplier: Decimal = NO_SURGE):
        self.surge_multiplier = Decimal(surge_multiplier)

    def calculate(self, contribution: Decimal, penalty: Decimal) -> Decimal:
        return round_whole((contribution + penalty) * self.surge_multiplier)


def strategy_for(surge_multiplier: Decimal) -> PricingStrategy:
    if surge_multiplier == NO_SURGE:
        return StandardPricing()
    return SurgePricing(surge_multiplier)


# ── Resolvers ─────────────────────────────────────────────────────────


class FareSlabResolver:
    """Picks the rate card for a vehicle type and distance."""

    def __init__(self, slabs: Iterable[FareSlab]):
        self.slabs = [s for s in slabs if s.is_active]

    def find_slab(self, vehicle_type: str, distance_km: Decimal) -> Optional[FareSlab]:
        candidates = [
            s
            for s in self.slabs
            if s.vehicle_type == vehicle_type and s.contains(distance_km)
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda s: (s.width, s.distance_from))

    def resolve(self, vehicle_type: str, distance_km: Decimal) -> tuple[Decimal, Decimal]:
        slab = self.find_slab(vehicle_type, distance_km)
        if slab is not None:
            return slab.base_fare, slab.per_unit_rate
        return DEFAULT_FARES.get(vehicle_type, UNKNOWN_VEHICLE_FARE)


class SurgeResolver:
    def __init__(self, rules: Iterable[SurgeRule], tz: str = "UTC"):
        self.rules = [r for r in rules if r.is_active]
        self.tz = tz

    def matching_rules(self, distance_km: Decimal, at: datetime) -> list[SurgeRule]:
        day, hhmm = local_day_and_time(at, self.tz)
        return [r for r in self.rules if r.matches(day, hhmm, distance_km)]

    def multiplier(self, distance_km: Decimal, at: datetime) -> Decimal:
        matched = self.matching_rules(distance_km, at)
        if not matched:
            return NO_SURGE
        return max(Decimal(r.multiplier) for r in matched)


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the ride lifecycle service."""

    def __init__(
        self,
        slabs: Iterable[FareSlab] = (),
        surge_rules: Iterable[SurgeRule] = (),
        tz: str = "UTC",
    ):
        self.slab_resolver = FareSlabResolver(slabs)
        self.surge_resolver = SurgeResolver(surge_rules, tz)

    def quote(
        self,
        vehicle_type: str,
        distance_km: Decimal,
        at: datetime,
        prior_penalty: Decimal = Decimal("0"),
    ) -> FareQuote:
        base_fare, rate = self.slab_resolver.resolve(vehicle_type, distance_km)
        contribution = base_fare + rate * distance_km
        surge = self.surge_resolver.multiplier(distance_km, at)
        fare = strategy_for(surge).calculate(contribution, Decimal(prior_penalty))
        return FareQuote(
            distance_km=distance_km,
            base_fare=base_fare,
            per_unit_rate=rate,
            slab_fare=contribution,
            penalty=Decimal(prior_penalty),
            surge_multiplier=surge,
            fare=fare,
        )
