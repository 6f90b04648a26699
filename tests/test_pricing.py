"""Unit tests for the fare pipeline: slabs, surge and the engine facade."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ridecore.domain.entities import FareSlab, SurgeRule
from ridecore.domain.pricing import (
    DEFAULT_FARES,
    FareSlabResolver,
    PricingEngine,
    StandardPricing,
    SurgePricing,
    SurgeResolver,
    local_day_and_time,
)

IST = "Asia/Kolkata"
# Monday 2026-10-19 08:30 IST
MONDAY_0830_IST = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
# Sunday 2026-10-18 08:30 IST
SUNDAY_0830_IST = datetime(2026, 10, 18, 3, 0, tzinfo=timezone.utc)

ALL_DAYS = (0, 1, 2, 3, 4, 5, 6)


def slab(vehicle_type="sedan", lo="0", hi="10", base="80", rate="15", active=True):
    return FareSlab(
        vehicle_type=vehicle_type,
        distance_from=Decimal(lo),
        distance_to=Decimal(hi),
        base_fare=Decimal(base),
        per_unit_rate=Decimal(rate),
        is_active=active,
    )


def rule(multiplier="1.5", days=ALL_DAYS, start="00:00", end="23:59", lo="0", hi="9999"):
    return SurgeRule(
        title=f"x{multiplier}",
        days=days,
        start_time=start,
        end_time=end,
        multiplier=Decimal(multiplier),
        distance_from=Decimal(lo),
        distance_to=Decimal(hi),
    )


class TestPricingStrategies:
    def test_standard_pricing(self):
        assert StandardPricing().calculate(Decimal("230"), Decimal("0")) == 230

    def test_surge_pricing_multiplier(self):
        strategy = SurgePricing(surge_multiplier=Decimal("1.5"))
        assert strategy.calculate(Decimal("230"), Decimal("0")) == 345

    def test_penalty_is_added_before_surge(self):
        strategy = SurgePricing(surge_multiplier=Decimal("1.5"))
        assert strategy.calculate(Decimal("230"), Decimal("50")) == 420

    def test_result_rounded_half_up(self):
        strategy = SurgePricing(surge_multiplier=Decimal("1.1"))
        # 105 * 1.1 = 115.5
        assert strategy.calculate(Decimal("105"), Decimal("0")) == 116


class TestFareSlabResolver:
    def test_matching_slab(self):
        resolver = FareSlabResolver([slab()])
        assert resolver.resolve("sedan", Decimal("10")) == (Decimal("80"), Decimal("15"))

    def test_bounds_inclusive(self):
        resolver = FareSlabResolver([slab(lo="2", hi="10", base="99")])
        assert resolver.resolve("sedan", Decimal("2"))[0] == Decimal("99")
        assert resolver.resolve("sedan", Decimal("10"))[0] == Decimal("99")

    def test_narrowest_slab_wins(self):
        resolver = FareSlabResolver(
            [slab(lo="0", hi="100", base="50"), slab(lo="5", hi="15", base="80")]
        )
        assert resolver.resolve("sedan", Decimal("10"))[0] == Decimal("80")

    def test_inactive_slab_ignored(self):
        resolver = FareSlabResolver([slab(base="999", active=False)])
        assert resolver.resolve("sedan", Decimal("5")) == DEFAULT_FARES["sedan"]

    def test_other_vehicle_slab_ignored(self):
        resolver = FareSlabResolver([slab(vehicle_type="suv", base="999")])
        assert resolver.resolve("sedan", Decimal("5")) == DEFAULT_FARES["sedan"]

    @pytest.mark.parametrize(
        "vehicle_type, expected",
        [
            ("suv", (100, 18)),
            ("sedan", (80, 15)),
            ("car", (70, 12)),
            ("auto", (40, 10)),
            ("bike", (30, 7)),
            ("scooter", (25, 6)),
            ("hovercraft", (50, 10)),
        ],
    )
    def test_fallback_defaults(self, vehicle_type, expected):
        resolver = FareSlabResolver([])
        base, rate = resolver.resolve(vehicle_type, Decimal("500"))
        assert (base, rate) == (Decimal(expected[0]), Decimal(expected[1]))


class TestSurgeResolver:
    def test_local_day_is_sunday_zero(self):
        assert local_day_and_time(SUNDAY_0830_IST, IST) == (0, "08:30")
        assert local_day_and_time(MONDAY_0830_IST, IST) == (1, "08:30")

    def test_no_rules_means_one(self):
        assert SurgeResolver([], IST).multiplier(Decimal("5"), MONDAY_0830_IST) == 1

    def test_highest_multiplier_wins(self):
        resolver = SurgeResolver([rule("1.2"), rule("1.8"), rule("1.5")], IST)
        assert resolver.multiplier(Decimal("5"), MONDAY_0830_IST) == Decimal("1.8")

    def test_day_must_match(self):
        resolver = SurgeResolver([rule(days=(1, 2, 3, 4, 5))], IST)
        assert resolver.multiplier(Decimal("5"), SUNDAY_0830_IST) == 1
        assert resolver.multiplier(Decimal("5"), MONDAY_0830_IST) == Decimal("1.5")

    def test_time_window_inclusive(self):
        resolver = SurgeResolver([rule(start="08:00", end="08:30")], IST)
        assert resolver.multiplier(Decimal("5"), MONDAY_0830_IST) == Decimal("1.5")

    def test_time_evaluated_in_local_zone(self):
        # 03:00 UTC is outside a 02:00-04:00 window once shifted to IST
        resolver = SurgeResolver([rule(start="02:00", end="04:00")], IST)
        assert resolver.multiplier(Decimal("5"), MONDAY_0830_IST) == 1

    def test_distance_window(self):
        resolver = SurgeResolver([rule(lo="0", hi="5")], IST)
        assert resolver.multiplier(Decimal("5"), MONDAY_0830_IST) == Decimal("1.5")
        assert resolver.multiplier(Decimal("5.001"), MONDAY_0830_IST) == 1

    def test_inactive_rule_ignored(self):
        inactive = SurgeRule(
            title="off",
            days=ALL_DAYS,
            start_time="00:00",
            end_time="23:59",
            multiplier=Decimal("3"),
            is_active=False,
        )
        assert SurgeResolver([inactive], IST).multiplier(Decimal("1"), MONDAY_0830_IST) == 1


class TestPricingEngine:
    def test_sedan_ten_km_no_surge(self):
        engine = PricingEngine([slab()], [], tz=IST)
        quote = engine.quote("sedan", Decimal("10"), MONDAY_0830_IST)
        assert quote.slab_fare == 230
        assert quote.surge_multiplier == 1
        assert quote.fare == 230

    def test_sedan_ten_km_with_surge(self):
        engine = PricingEngine([slab()], [rule("1.5")], tz=IST)
        quote = engine.quote("sedan", Decimal("10"), MONDAY_0830_IST)
        assert quote.fare == 345
        assert quote.surge_multiplier == Decimal("1.5")

    def test_single_rounding_on_final_fare(self):
        engine = PricingEngine([slab(hi="20")], [rule("1.5")], tz=IST)
        # (80 + 15 * 10.033) * 1.5 = 345.7425 -> 346
        quote = engine.quote("sedan", Decimal("10.033"), MONDAY_0830_IST)
        assert quote.slab_fare == Decimal("230.495")
        assert quote.fare == 346

    def test_fractional_penalty_not_rounded_early(self):
        engine = PricingEngine([slab()], [], tz=IST)
        # 80 + 15 * 2.03 + 0.30 = 110.75 -> 111
        quote = engine.quote(
            "sedan", Decimal("2.03"), MONDAY_0830_IST, prior_penalty=Decimal("0.30")
        )
        assert quote.fare == 111

    def test_prior_penalty_included(self):
        engine = PricingEngine([slab()], [rule("1.5")], tz=IST)
        quote = engine.quote(
            "sedan", Decimal("10"), MONDAY_0830_IST, prior_penalty=Decimal("50")
        )
        assert quote.penalty == Decimal("50")
        assert quote.fare == 420

    def test_deterministic(self):
        engine = PricingEngine([slab()], [rule("1.3")], tz=IST)
        quotes = {engine.quote("sedan", Decimal("7.25"), MONDAY_0830_IST).fare for _ in range(5)}
        assert len(quotes) == 1
