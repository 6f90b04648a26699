"""Promotion rules and the apply / remove service."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from ridecore.domain import promotions as rules
from ridecore.domain.entities import Promotion
from ridecore.domain.enums import PromotionKind, RideStatus
from ridecore.domain.errors import (
    ConflictError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from ridecore.infrastructure.repositories import PromotionRepository
from ridecore.services.promotions import PromotionService
from ridecore.services.rides import RideLifecycleService
from tests.conftest import (
    ANDHERI,
    BANDRA,
    add_driver,
    add_fare_slab,
    add_promotion,
    add_rider,
    location,
)

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def promo(kind=PromotionKind.FLAT, value="50", **overrides) -> Promotion:
    fields = dict(
        id="promo-1",
        code="FLAT50",
        kind=kind,
        value=Decimal(value),
        valid_from=NOW - timedelta(days=1),
        valid_to=NOW + timedelta(days=1),
    )
    fields.update(overrides)
    return Promotion(**fields)


class TestDiscount:
    def test_flat(self):
        assert rules.compute_discount(promo(), Decimal("300")) == Decimal("50.00")

    def test_percentage(self):
        p = promo(PromotionKind.PERCENTAGE, "20")
        assert rules.compute_discount(p, Decimal("300")) == Decimal("60.00")

    def test_percentage_capped(self):
        p = promo(PromotionKind.PERCENTAGE, "20", max_discount_amount=Decimal("40"))
        assert rules.compute_discount(p, Decimal("300")) == Decimal("40.00")

    def test_never_exceeds_fare(self):
        p = promo(value="500")
        assert rules.compute_discount(p, Decimal("120")) == Decimal("120.00")

    def test_rounded_to_cents(self):
        p = promo(PromotionKind.PERCENTAGE, "12.5")
        # 12.5% of 123 = 15.375
        assert rules.compute_discount(p, Decimal("123")) == Decimal("15.38")


class TestEligibility:
    def test_code_normalised(self):
        assert rules.normalize_code("  flat50 ") == "FLAT50"

    def test_blank_code(self):
        with pytest.raises(ValidationError):
            rules.normalize_code("   ")

    def test_expired(self):
        p = promo(valid_to=NOW - timedelta(minutes=1))
        with pytest.raises(NotFoundError):
            rules.check_eligibility(p, Decimal("300"), NOW)

    def test_not_yet_valid(self):
        p = promo(valid_from=NOW + timedelta(hours=1))
        with pytest.raises(NotFoundError):
            rules.check_eligibility(p, Decimal("300"), NOW)

    def test_inactive(self):
        with pytest.raises(NotFoundError):
            rules.check_eligibility(promo(is_active=False), Decimal("300"), NOW)

    def test_minimum_ride_amount(self):
        p = promo(min_ride_amount=Decimal("200"))
        with pytest.raises(ValidationError) as exc:
            rules.check_eligibility(p, Decimal("199"), NOW)
        assert exc.value.extra["minRideAmount"] == "200"
        rules.check_eligibility(p, Decimal("200"), NOW)


class TestUsageCaps:
    def test_per_user_cap(self):
        p = promo(usage_limit_per_user=2, used_by=["rider-1", "rider-1"])
        with pytest.raises(LimitExceededError):
            rules.check_usage_caps(p, "rider-1")
        rules.check_usage_caps(p, "rider-2")

    def test_global_cap(self):
        p = promo(global_usage_limit=2, used_by=["rider-1", "rider-2"])
        with pytest.raises(LimitExceededError):
            rules.check_usage_caps(p, "rider-3")

    def test_without_one_usage(self):
        used_by = ["rider-1", "rider-2", "rider-1"]
        assert rules.without_one_usage(used_by, "rider-1") == ["rider-2", "rider-1"]
        assert rules.without_one_usage(used_by, "rider-9") == used_by


# ── Service ───────────────────────────────────────────────────────────


async def accepted_ride(session, notifier, rider_id="rider-1"):
    """A ride priced at exactly 300 (flat slab), accepted by driver-1."""
    rides = RideLifecycleService(session, notifier)
    ride = await rides.create(
        rider_id,
        pickup=location("Bandra", BANDRA),
        drops=[location("Andheri", ANDHERI)],
        vehicle_type="sedan",
    )
    return await rides.accept(ride.id, "driver-1")


@pytest_asyncio.fixture
async def priced(db_session):
    await add_rider(db_session, "rider-1")
    await add_rider(db_session, "rider-2")
    await add_driver(db_session, "driver-1")
    await add_fare_slab(db_session, base_fare="300", per_unit_rate="0")
    return db_session


class TestPromotionService:
    @pytest.mark.asyncio
    async def test_apply_and_remove(self, priced, notifier):
        await add_promotion(priced, "FLAT50")
        ride = await accepted_ride(priced, notifier)
        service = PromotionService(priced)

        updated, application = await service.apply(ride.id, "flat50", "rider-1")
        assert application.discount == Decimal("50.00")
        assert updated.fare == Decimal("250.00")
        assert updated.promo_code == "FLAT50"
        promotion = await PromotionRepository(priced).get_by_code("FLAT50")
        assert promotion.used_by == ["rider-1"]

        restored = await service.remove(ride.id, "FLAT50", "rider-1")
        assert restored.fare == Decimal("300")
        assert restored.promo_application is None
        promotion = await PromotionRepository(priced).get_by_code("FLAT50")
        assert promotion.used_by == []

    @pytest.mark.asyncio
    async def test_second_code_refused(self, priced, notifier):
        await add_promotion(priced, "FLAT50")
        await add_promotion(priced, "SAVE20", PromotionKind.PERCENTAGE, "20")
        ride = await accepted_ride(priced, notifier)
        service = PromotionService(priced)

        await service.apply(ride.id, "FLAT50", "rider-1")
        with pytest.raises(ConflictError) as exc:
            await service.apply(ride.id, "SAVE20", "rider-1")
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_per_user_limit(self, priced, notifier):
        await add_promotion(priced, "ONCE", usage_limit_per_user=1)
        service = PromotionService(priced)
        rides = RideLifecycleService(priced, notifier)

        first = await accepted_ride(priced, notifier)
        await service.apply(first.id, "ONCE", "rider-1")
        await rides.cancel(first.id, "rider", "changed plans", caller_id="rider-1")

        second = await accepted_ride(priced, notifier)
        with pytest.raises(LimitExceededError):
            await service.apply(second.id, "ONCE", "rider-1")

    @pytest.mark.asyncio
    async def test_minimum_amount(self, priced, notifier):
        await add_promotion(priced, "BIG", min_ride_amount="500")
        ride = await accepted_ride(priced, notifier)
        with pytest.raises(ValidationError):
            await PromotionService(priced).apply(ride.id, "BIG", "rider-1")

    @pytest.mark.asyncio
    async def test_unknown_code(self, priced, notifier):
        ride = await accepted_ride(priced, notifier)
        with pytest.raises(NotFoundError):
            await PromotionService(priced).apply(ride.id, "NOPE", "rider-1")

    @pytest.mark.asyncio
    async def test_other_riders_ride(self, priced, notifier):
        await add_promotion(priced, "FLAT50")
        ride = await accepted_ride(priced, notifier)
        with pytest.raises(NotFoundError):
            await PromotionService(priced).apply(ride.id, "FLAT50", "rider-2")

    @pytest.mark.asyncio
    async def test_requires_accepted_ride(self, priced, notifier):
        await add_promotion(priced, "FLAT50")
        ride = await RideLifecycleService(priced, notifier).create(
            "rider-1",
            pickup=location("Bandra", BANDRA),
            drops=[location("Andheri", ANDHERI)],
            vehicle_type="sedan",
        )
        assert ride.status == RideStatus.REQUESTED
        with pytest.raises(ConflictError):
            await PromotionService(priced).apply(ride.id, "FLAT50", "rider-1")

    @pytest.mark.asyncio
    async def test_remove_unapplied(self, priced, notifier):
        ride = await accepted_ride(priced, notifier)
        with pytest.raises(ConflictError) as exc:
            await PromotionService(priced).remove(ride.id, "FLAT50", "rider-1")
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_list_active(self, priced):
        await add_promotion(priced, "LIVE")
        await add_promotion(priced, "OFF", is_active=False)
        codes = [p.code for p in await PromotionService(priced).list_active()]
        assert codes == ["LIVE"]
