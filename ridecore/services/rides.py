"""
Ride lifecycle orchestration.

Each operation reads the ride, applies the transition to an in-memory
copy (which enforces legality through the state machine), then writes
the copy back with one conditional ``UPDATE`` keyed on what was read.
If the row changed in between, the write matches nothing and the caller
gets a :class:`ConflictError` carrying the ride's current status.

Notifications go out only after the commit.
"""

from __future__ import annotations

import logging
import secrets
from decimal import Decimal
from typing import Any, Optional

import redis.asyncio as aioredis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import notifications
from .notifications import Notifier
from ridecore.config import Settings, settings as default_settings
from ridecore.domain import lifecycle
from ridecore.domain.distance import trip_distance_km, validate_coordinates
from ridecore.domain.entities import Driver, FareQuote, Location, Ride, utcnow
from ridecore.domain.enums import CancelActor, PaymentMode, RideAction
from ridecore.domain.errors import (
    ActiveRideExistsError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ridecore.domain.pricing import PricingEngine
from ridecore.infrastructure.config_cache import PricingConfigCache
from ridecore.infrastructure.locks import rider_lock
from ridecore.infrastructure.repositories import (
    ANY,
    DriverRepository,
    PricingConfigRepository,
    RideRepository,
    RiderRepository,
)

logger = logging.getLogger(__name__)


def generate_pin() -> str:
    """Six decimal digits, never starting with 0."""
    return str(100_000 + secrets.randbelow(900_000))


def parse_location(data: Any, label: str) -> Location:
    if not isinstance(data, dict):
        raise ValidationError(f"{label} must be an object with address and coordinates")
    address = (data.get("address") or "").strip()
    if not address:
        raise ValidationError(f"{label} address is required")
    lng, lat = validate_coordinates(data.get("coordinates"))
    return Location(address=address, lng=lng, lat=lat)


class RideLifecycleService:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier,
        redis_client: Optional[aioredis.Redis] = None,
        config: Settings = default_settings,
    ):
        self.session = session
        self.notifier = notifier
        self.redis = redis_client
        self.config = config
        self.rides = RideRepository(session)
        self.drivers = DriverRepository(session)
        self.riders = RiderRepository(session)
        self.pricing_config = PricingConfigCache(
            PricingConfigRepository(session),
            redis_client,
            config.pricing_cache_ttl_seconds,
        )

    # ── Rider operations ────────────────────────────────────────────

    async def create(
        self,
        rider_id: str,
        pickup: dict,
        drops: list[dict],
        vehicle_type: str,
        payment_mode: Optional[str] = None,
    ) -> Ride:
        if not drops:
            raise ValidationError("At least one drop location is required")
        vehicle_type = (vehicle_type or "").strip().lower()
        if not vehicle_type:
            raise ValidationError("vehicleType is required")
        ride = Ride(
            rider_id=rider_id,
            pickup=parse_location(pickup, "pickup"),
            drops=[parse_location(d, f"drops[{i}]") for i, d in enumerate(drops)],
            vehicle_type=vehicle_type,
            pin=generate_pin(),
            payment_mode=self._payment_mode(payment_mode) if payment_mode else None,
            requested_at=utcnow(),
        )

        rider = await self.riders.get_by_id(rider_id)
        if rider is None:
            raise NotFoundError("Rider not found")
        if not rider.is_active:
            raise PermissionDeniedError("Rider account is not active")

        if self.redis is None:
            created = await self._insert(ride)
        else:
            async with rider_lock(
                self.redis, rider_id, self.config.rider_lock_ttl_seconds
            ):
                created = await self._insert(ride)

        logger.info(f"Ride {created.id} requested by rider {rider_id}")
        self.notifier.emit(notifications.trip_requested(created))
        return created

    async def list_for_rider(self, rider_id: str) -> list[Ride]:
        return await self.rides.list_for_rider(rider_id)

    async def detail(self, rider_id: str, ride_id: Optional[str] = None) -> Ride:
        """A rider's ride by id, or their latest ride when no id is given."""
        if ride_id:
            ride = await self.rides.get_by_id(ride_id)
            if ride is None or ride.rider_id != rider_id:
                raise NotFoundError("Ride not found")
            return ride
        ride = await self.rides.get_latest_for_rider(rider_id)
        if ride is None:
            raise NotFoundError("No rides found")
        return ride

    # ── Driver operations ───────────────────────────────────────────

    async def list_for_driver(self, driver_id: str) -> list[Ride]:
        await self._active_driver(driver_id)
        return await self.rides.list_for_driver(driver_id)

    async def accept(self, ride_id: str, driver_id: str) -> Ride:
        await self._active_driver(driver_id)
        ride = await self._get(ride_id)

        lifecycle.next_status(ride.status, RideAction.ACCEPT)
        if ride.driver_id is not None:
            raise ConflictError(
                "Ride already assigned to a driver",
                current_status=ride.status.value,
                action=RideAction.ACCEPT.value,
            )
        now = utcnow()
        updated = ride.copy()
        updated.accept(driver_id, await self._quote(ride), now)

        await self._write(
            ride, updated, RideAction.ACCEPT, expected_driver_id=None
        )
        logger.info(
            f"Ride {ride_id} accepted by driver {driver_id}, fare {updated.fare} "
            f"(distance {updated.distance_km} km, surge {updated.surge_multiplier})"
        )
        self.notifier.emit(notifications.trip_accepted(updated))
        return updated

    async def reject(self, ride_id: str, driver_id: str) -> Ride:
        await self._active_driver(driver_id)
        ride = await self._get(ride_id)
        updated = ride.copy()
        updated.reject()
        await self._write(ride, updated, RideAction.REJECT, expected_driver_id=None)
        logger.info(f"Ride {ride_id} rejected by driver {driver_id}")
        return updated

    async def mark_reached(self, ride_id: str, driver_id: str) -> Ride:
        ride = await self._get(ride_id)
        updated = ride.copy()
        updated.mark_driver_reached(driver_id, utcnow())
        await self._write(
            ride, updated, RideAction.MARK_REACHED, expected_driver_id=driver_id
        )
        logger.info(f"Driver {driver_id} reached pickup for ride {ride_id}")
        self.notifier.emit(notifications.driver_reached(updated))
        return updated

    async def start(self, ride_id: str, driver_id: str, pin: Any) -> Ride:
        ride = await self._get(ride_id)
        updated = ride.copy()
        updated.start(driver_id, pin, utcnow())
        await self._write(ride, updated, RideAction.START, expected_driver_id=driver_id)
        logger.info(f"Ride {ride_id} started")
        self.notifier.emit(notifications.trip_started(updated))
        return updated

    async def complete(
        self, ride_id: str, driver_id: str, payment_mode: Optional[str]
    ) -> Ride:
        mode = self._payment_mode(payment_mode)
        ride = await self._get(ride_id)
        updated = ride.copy()
        updated.complete(driver_id, mode, utcnow())
        await self._write(
            ride,
            updated,
            RideAction.COMPLETE,
            expected_driver_id=driver_id,
            before_commit=lambda: self.drivers.increment_rides_completed(driver_id),
        )
        logger.info(
            f"Ride {ride_id} completed in {updated.duration_minutes} min, "
            f"paid by {mode.value}"
        )
        self.notifier.emit(notifications.trip_completed(updated))
        return updated

    # ── Shared / admin operations ───────────────────────────────────

    async def cancel(
        self,
        ride_id: str,
        cancelled_by: str,
        reason: str,
        caller_id: Optional[str] = None,
    ) -> Ride:
        ride = await self._get(ride_id)
        self._check_party(ride, cancelled_by, caller_id)

        updated = ride.copy()
        updated.cancel(
            cancelled_by,
            reason,
            utcnow(),
            Decimal(str(self.config.penalty_rate)),
        )
        await self._write(
            ride, updated, RideAction.CANCEL, expected_driver_id=ride.driver_id
        )
        logger.info(
            f"Ride {ride_id} cancelled by {updated.cancelled_by.value}, "
            f"penalty {updated.penalty_amount}"
        )
        for event in notifications.trip_cancelled(updated):
            self.notifier.emit(event)
        return updated

    async def reassign(self, ride_id: str, new_driver_id: str) -> Ride:
        if not new_driver_id:
            raise ValidationError("newDriverId is required")
        await self._active_driver(new_driver_id)
        ride = await self._get(ride_id)

        lifecycle.next_status(ride.status, RideAction.REASSIGN)
        quote = await self._quote(ride) if ride.fare is None else None
        updated = ride.copy()
        updated.reassign(new_driver_id, quote, utcnow())
        await self._write(
            ride, updated, RideAction.REASSIGN, expected_driver_id=ride.driver_id
        )
        logger.info(
            f"Ride {ride_id} reassigned from {ride.driver_id} to {new_driver_id}"
        )
        self.notifier.emit(notifications.trip_accepted(updated))
        return updated

    # ── helpers ─────────────────────────────────────────────────────

    async def _insert(self, ride: Ride) -> Ride:
        active = await self.rides.get_active_for_rider(ride.rider_id)
        if active is not None:
            raise self._active_ride_error(active)

        carried = await self.rides.get_unsettled_penalty_ride(ride.rider_id)
        if carried is not None and await self.rides.mark_penalty_carried(carried.id):
            ride.penalty_amount = carried.penalty_amount
            logger.info(
                f"Carrying penalty {carried.penalty_amount} from ride {carried.id}"
            )

        try:
            created = await self.rides.create(ride)
            await self.session.commit()
        except IntegrityError:
            # Lost the race on the one-active-ride index.
            await self.session.rollback()
            active = await self.rides.get_active_for_rider(ride.rider_id)
            if active is None:
                raise
            raise self._active_ride_error(active) from None
        return created

    @staticmethod
    def _active_ride_error(active: Ride) -> ActiveRideExistsError:
        return ActiveRideExistsError(
            "You already have an active ride",
            current_status=active.status.value,
            extra={"activeRideId": active.id, "status": active.status.value},
        )

    async def _get(self, ride_id: str) -> Ride:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found")
        return ride

    async def _active_driver(self, driver_id: str) -> Driver:
        if not driver_id:
            raise ValidationError("Driver id is required")
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError("Driver not found")
        if not driver.is_active:
            raise ConflictError(f"Driver is {driver.status.value}")
        return driver

    async def _quote(self, ride: Ride) -> FareQuote:
        distance = trip_distance_km(
            ride.pickup.coordinates, [d.coordinates for d in ride.drops]
        )
        slabs, surge_rules = await self.pricing_config.load()
        engine = PricingEngine(slabs, surge_rules, tz=self.config.timezone)
        return engine.quote(
            ride.vehicle_type, distance, utcnow(), prior_penalty=ride.penalty_amount
        )

    async def _write(
        self,
        before: Ride,
        after: Ride,
        action: RideAction,
        *,
        expected_driver_id: Any = ANY,
        before_commit=None,
    ) -> None:
        try:
            won = await self.rides.compare_and_set(
                after,
                expected_status=before.status,
                expected_driver_id=expected_driver_id,
            )
        except IntegrityError:
            # Reviving a rejected ride while the rider holds another active one.
            await self.session.rollback()
            active = await self.rides.get_active_for_rider(before.rider_id)
            if active is None or active.id == before.id:
                raise
            current = await self._get(before.id)
            raise ConflictError(
                "Rider already has another active ride",
                current_status=current.status.value,
                action=action.value,
                extra={"activeRideId": active.id},
            ) from None
        if not won:
            await self.session.rollback()
            current = await self._get(before.id)
            raise ConflictError(
                self._lost_race_message(action, current),
                current_status=current.status.value,
                action=action.value,
            )
        if before_commit is not None:
            await before_commit()
        await self.session.commit()

    @staticmethod
    def _lost_race_message(action: RideAction, current: Ride) -> str:
        if action == RideAction.ACCEPT and current.driver_id is not None:
            return "Ride already accepted by another driver"
        return f"Ride changed to {current.status.value} while processing {action.value}"

    @staticmethod
    def _payment_mode(value: Optional[str]) -> PaymentMode:
        try:
            return PaymentMode((value or "").lower())
        except ValueError:
            raise ValidationError("paymentMode must be one of: cash, online") from None

    @staticmethod
    def _check_party(ride: Ride, cancelled_by: str, caller_id: Optional[str]) -> None:
        if caller_id is None or cancelled_by == CancelActor.ADMIN.value:
            return
        if cancelled_by == CancelActor.RIDER.value and ride.rider_id != caller_id:
            raise PermissionDeniedError("Ride does not belong to this rider")
        if cancelled_by == CancelActor.DRIVER.value and ride.driver_id != caller_id:
            raise PermissionDeniedError("Ride is not assigned to this driver")


