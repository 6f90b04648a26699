"""
Notification dispatch.

Events are emitted after the transition has committed and delivered on a
background task.  Delivery failures are logged and swallowed; they never
reach the request that caused the transition.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Optional

import redis.asyncio as aioredis

from ridecore.domain.entities import Ride
from ridecore.domain.enums import NotificationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    type: NotificationType
    to_user_id: str
    to_role: str
    title: str
    message: str
    ride_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data


class NotificationDispatcher(ABC):
    @abstractmethod
    async def send(self, event: NotificationEvent) -> None: ...


class LoggingDispatcher(NotificationDispatcher):
    """Used when Redis is disabled."""

    async def send(self, event: NotificationEvent) -> None:
        logger.info(
            f"Notify {event.to_role} {event.to_user_id}: [{event.type.value}] "
            f"{event.title}"
        )


class RedisDispatcher(NotificationDispatcher):
    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def send(self, event: NotificationEvent) -> None:
        await self.redis.publish(self.channel, json.dumps(event.to_dict()))


class Notifier:
    """Fire-and-forget front for a :class:`NotificationDispatcher`."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher
        self._pending: set[asyncio.Task] = set()

    def emit(self, event: NotificationEvent) -> None:
        task = asyncio.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            await self.dispatcher.send(event)
        except Exception as e:
            logger.warning(
                f"Notification {event.type.value} for ride {event.ride_id} "
                f"failed: {e}"
            )


# ── Event builders ────────────────────────────────────────────────────


def trip_requested(ride: Ride) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.TRIP_REQUESTED,
        to_user_id=ride.rider_id,
        to_role="rider",
        title="Ride requested",
        message="We are finding a driver for you.",
        ride_id=ride.id,
    )


def trip_accepted(ride: Ride) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.TRIP_ACCEPTED,
        to_user_id=ride.rider_id,
        to_role="rider",
        title="Ride accepted",
        message=f"Your driver is on the way. Fare: {ride.fare}",
        ride_id=ride.id,
    )


def driver_reached(ride: Ride) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.DRIVER_REACHED,
        to_user_id=ride.rider_id,
        to_role="rider",
        title="Driver has arrived",
        message=f"Share your pin {ride.pin} with the driver to start the ride.",
        ride_id=ride.id,
    )


def trip_started(ride: Ride) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.TRIP_STARTED,
        to_user_id=ride.rider_id,
        to_role="rider",
        title="Ride started",
        message="Enjoy your ride.",
        ride_id=ride.id,
    )


def trip_completed(ride: Ride) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.TRIP_COMPLETED,
        to_user_id=ride.rider_id,
        to_role="rider",
        title="Ride completed",
        message=f"You have reached your destination. Fare: {ride.fare}",
        ride_id=ride.id,
    )


def trip_cancelled(ride: Ride) -> list[NotificationEvent]:
    """Tell the other party; both when an admin cancels."""
    events = []
    reason = ride.cancellation_reason or ""
    if ride.cancelled_by != "rider":
        events.append(
            NotificationEvent(
                type=NotificationType.TRIP_CANCELLED,
                to_user_id=ride.rider_id,
                to_role="rider",
                title="Ride cancelled",
                message=f"Your ride was cancelled: {reason}",
                ride_id=ride.id,
            )
        )
    if ride.driver_id and ride.cancelled_by != "driver":
        events.append(
            NotificationEvent(
                type=NotificationType.TRIP_CANCELLED,
                to_user_id=ride.driver_id,
                to_role="driver",
                title="Ride cancelled",
                message=f"The ride was cancelled: {reason}",
                ride_id=ride.id,
            )
        )
    return events
