"""Unit tests for ride state transitions (State Pattern)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ridecore.domain import lifecycle
from ridecore.domain.entities import FareQuote, Location, Ride
from ridecore.domain.enums import CancelActor, PaymentMode, RideAction, RideStatus
from ridecore.domain.errors import ConflictError, ValidationError

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
PENALTY_RATE = Decimal("0.10")

QUOTE = FareQuote(
    distance_km=Decimal("10.000"),
    base_fare=Decimal("80"),
    per_unit_rate=Decimal("15"),
    slab_fare=Decimal("230"),
    penalty=Decimal("0"),
    surge_multiplier=Decimal("1"),
    fare=Decimal("230"),
)


def make_ride(status=RideStatus.REQUESTED, **overrides) -> Ride:
    fields = dict(
        id="ride-1",
        rider_id="rider-1",
        pickup=Location("Bandra", 72.84, 19.054),
        drops=[Location("Andheri", 72.8777, 19.076)],
        vehicle_type="sedan",
        pin="482913",
        status=status,
    )
    fields.update(overrides)
    return Ride(**fields)


def accepted_ride(**overrides) -> Ride:
    ride = make_ride()
    ride.accept("driver-1", QUOTE, NOW)
    for key, value in overrides.items():
        setattr(ride, key, value)
    return ride


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current, action, expected",
        [
            (RideStatus.REQUESTED, RideAction.ACCEPT, RideStatus.ACCEPTED),
            (RideStatus.REJECTED, RideAction.ACCEPT, RideStatus.ACCEPTED),
            (RideStatus.REQUESTED, RideAction.REJECT, RideStatus.REJECTED),
            (RideStatus.REQUESTED, RideAction.CANCEL, RideStatus.CANCELLED),
            (RideStatus.ACCEPTED, RideAction.CANCEL, RideStatus.CANCELLED),
            (RideStatus.ACCEPTED, RideAction.MARK_REACHED, RideStatus.ACCEPTED),
            (RideStatus.ACCEPTED, RideAction.START, RideStatus.ONGOING),
            (RideStatus.ONGOING, RideAction.COMPLETE, RideStatus.COMPLETED),
            (RideStatus.REQUESTED, RideAction.REASSIGN, RideStatus.ACCEPTED),
            (RideStatus.ACCEPTED, RideAction.REASSIGN, RideStatus.ACCEPTED),
            (RideStatus.REJECTED, RideAction.REASSIGN, RideStatus.ACCEPTED),
        ],
    )
    def test_legal(self, current, action, expected):
        assert lifecycle.next_status(current, action) == expected

    @pytest.mark.parametrize(
        "current, action",
        [
            (RideStatus.ACCEPTED, RideAction.ACCEPT),
            (RideStatus.ONGOING, RideAction.CANCEL),
            (RideStatus.REJECTED, RideAction.CANCEL),
            (RideStatus.REQUESTED, RideAction.START),
            (RideStatus.REQUESTED, RideAction.COMPLETE),
            (RideStatus.ONGOING, RideAction.REASSIGN),
        ],
    )
    def test_illegal(self, current, action):
        with pytest.raises(ConflictError) as exc:
            lifecycle.next_status(current, action)
        assert exc.value.current_status == current.value
        assert exc.value.action == action.value

    @pytest.mark.parametrize("terminal", [RideStatus.COMPLETED, RideStatus.CANCELLED])
    def test_terminal_states_have_no_exit(self, terminal):
        for action in RideAction:
            assert not lifecycle.can_apply(terminal, action)


class TestAccept:
    def test_freezes_fare_and_assigns_driver(self):
        ride = make_ride()
        ride.accept("driver-1", QUOTE, NOW)
        assert ride.status == RideStatus.ACCEPTED
        assert ride.driver_id == "driver-1"
        assert ride.fare == Decimal("230")
        assert ride.distance_km == Decimal("10.000")
        assert ride.started_at == NOW

    def test_clears_prior_penalty(self):
        ride = make_ride(penalty_amount=Decimal("23.00"))
        ride.accept("driver-1", QUOTE, NOW)
        assert ride.penalty_amount == 0

    def test_first_assignment_wins(self):
        ride = make_ride(status=RideStatus.REJECTED, driver_id="driver-1")
        with pytest.raises(ConflictError):
            ride.accept("driver-2", QUOTE, NOW)
        assert ride.driver_id == "driver-1"


class TestStart:
    def test_requires_driver_reached(self):
        ride = accepted_ride()
        with pytest.raises(ConflictError) as exc:
            ride.start("driver-1", "482913", NOW)
        assert exc.value.status_code == 400
        assert ride.status == RideStatus.ACCEPTED

    def test_pin_mismatch_leaves_status(self):
        ride = accepted_ride(driver_reached_at=NOW)
        with pytest.raises(ValidationError):
            ride.start("driver-1", "000000", NOW)
        assert ride.status == RideStatus.ACCEPTED
        assert not ride.is_pin_verified

    def test_pin_not_normalised(self):
        ride = accepted_ride(driver_reached_at=NOW)
        with pytest.raises(ValidationError):
            ride.start("driver-1", " 482913", NOW)

    def test_numeric_pin_matches(self):
        ride = accepted_ride(driver_reached_at=NOW)
        ride.start("driver-1", 482913, NOW)
        assert ride.status == RideStatus.ONGOING
        assert ride.is_pin_verified

    def test_only_assigned_driver(self):
        ride = accepted_ride(driver_reached_at=NOW)
        with pytest.raises(ConflictError):
            ride.start("driver-2", "482913", NOW)


class TestComplete:
    def test_records_duration_and_payment(self):
        ride = accepted_ride(driver_reached_at=NOW)
        ride.start("driver-1", "482913", NOW)
        ride.complete("driver-1", PaymentMode.CASH, NOW + timedelta(minutes=27, seconds=40))
        assert ride.status == RideStatus.COMPLETED
        assert ride.duration_minutes == 28
        assert ride.payment_mode == PaymentMode.CASH

    def test_cannot_complete_accepted(self):
        with pytest.raises(ConflictError):
            accepted_ride().complete("driver-1", PaymentMode.CASH, NOW)


class TestCancel:
    def test_penalty_is_ten_percent_of_fare(self):
        ride = accepted_ride(fare=Decimal("500"))
        ride.cancel(CancelActor.RIDER, "changed plans", NOW, PENALTY_RATE)
        assert ride.status == RideStatus.CANCELLED
        assert ride.penalty_amount == Decimal("50.00")
        assert ride.cancelled_by == CancelActor.RIDER

    def test_no_penalty_without_fare(self):
        ride = make_ride()
        ride.cancel("rider", "changed plans", NOW, PENALTY_RATE)
        assert ride.penalty_amount == 0

    def test_reason_required(self):
        ride = make_ride()
        with pytest.raises(ValidationError):
            ride.cancel("rider", "  no ", NOW, PENALTY_RATE)
        assert ride.status == RideStatus.REQUESTED

    def test_actor_validated(self):
        with pytest.raises(ValidationError):
            make_ride().cancel("passenger", "changed plans", NOW, PENALTY_RATE)

    def test_ongoing_cannot_be_cancelled(self):
        ride = make_ride(status=RideStatus.ONGOING)
        with pytest.raises(ConflictError):
            ride.cancel("rider", "changed plans", NOW, PENALTY_RATE)


class TestReassign:
    def test_prices_unpriced_ride(self):
        ride = make_ride(status=RideStatus.REJECTED)
        ride.reassign("driver-2", QUOTE, NOW)
        assert ride.status == RideStatus.ACCEPTED
        assert ride.driver_id == "driver-2"
        assert ride.fare == Decimal("230")

    def test_keeps_fare_and_clears_reached(self):
        ride = accepted_ride(fare=Decimal("300"), driver_reached_at=NOW)
        ride.reassign("driver-2", None, NOW)
        assert ride.fare == Decimal("300")
        assert ride.driver_reached_at is None
