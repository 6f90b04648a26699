"""
Promotion application and removal.

The usage list is written with an optimistic compare-and-swap on the
promotion's ``version``.  The caps are checked against the very snapshot
being swapped, so two concurrent applications can never both slip under
a limit: the loser re-reads, re-checks and either fits or is refused.
The ride write is conditional too, and both happen in one transaction.
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.config import Settings, settings as default_settings
from ridecore.domain import promotions as rules
from ridecore.domain.entities import PromoApplication, Promotion, Ride, utcnow
from ridecore.domain.enums import RideStatus
from ridecore.domain.errors import ConflictError, NotFoundError
from ridecore.infrastructure.repositories import PromotionRepository, RideRepository

logger = logging.getLogger(__name__)


class PromotionService:
    def __init__(self, session: AsyncSession, config: Settings = default_settings):
        self.session = session
        self.config = config
        self.rides = RideRepository(session)
        self.promotions = PromotionRepository(session)

    async def apply(
        self, ride_id: str, code: str, rider_id: str
    ) -> tuple[Ride, PromoApplication]:
        code = rules.normalize_code(code)
        ride = await self._rider_ride(ride_id, rider_id)
        ride.ensure_promotion_allowed()

        promotion = await self.promotions.get_by_code(code)
        if promotion is None:
            raise NotFoundError("Invalid or expired promo code")
        now = utcnow()
        rules.check_eligibility(promotion, ride.fare, now)

        promotion = await self._swap_usage(
            promotion,
            lambda p: rules.check_usage_caps(p, rider_id),
            lambda used_by: rules.with_usage(used_by, rider_id),
        )
        application = rules.build_application(promotion, ride.fare, now)
        updated = ride.copy()
        updated.apply_promotion(application)

        won = await self.rides.compare_and_set(
            updated, expected_status=RideStatus.ACCEPTED, expected_promo_code=None
        )
        if not won:
            await self.session.rollback()
            raise ConflictError(
                "Ride changed while applying the promo code",
                action="apply_promotion",
            )
        await self.session.commit()
        logger.info(
            f"Promo {code} applied to ride {ride_id}: -{application.discount}, "
            f"fare now {updated.fare}"
        )
        return updated, application

    async def remove(self, ride_id: str, code: str, rider_id: str) -> Ride:
        code = rules.normalize_code(code)
        ride = await self._rider_ride(ride_id, rider_id)
        updated = ride.copy()
        application = updated.remove_promotion(code)

        promotion = await self.promotions.get_by_id(application.promotion_id)
        if promotion is not None:
            await self._swap_usage(
                promotion,
                lambda p: None,
                lambda used_by: rules.without_one_usage(used_by, rider_id),
            )
        else:
            logger.warning(f"Promotion {application.promotion_id} no longer exists")

        won = await self.rides.compare_and_set(
            updated, expected_status=RideStatus.ACCEPTED, expected_promo_code=code
        )
        if not won:
            await self.session.rollback()
            raise ConflictError(
                "Ride changed while removing the promo code",
                action="remove_promotion",
            )
        await self.session.commit()
        logger.info(f"Promo {code} removed from ride {ride_id}, fare now {updated.fare}")
        return updated

    async def list_active(self) -> list[Promotion]:
        return await self.promotions.list_active(utcnow())

    # ── helpers ─────────────────────────────────────────────────────

    async def _rider_ride(self, ride_id: str, rider_id: str) -> Ride:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None or ride.rider_id != rider_id:
            raise NotFoundError("Ride not found")
        return ride

    async def _swap_usage(
        self,
        promotion: Promotion,
        check: Callable[[Promotion], None],
        change: Callable[[list[str]], list[str]],
    ) -> Promotion:
        """Check-and-write ``used_by``; re-read and re-check on a lost race."""
        for _ in range(self.config.promotion_cas_attempts):
            check(promotion)
            used_by = change(promotion.used_by)
            if await self.promotions.swap_usage(
                promotion.id, promotion.version, used_by
            ):
                promotion.used_by = used_by
                promotion.version += 1
                return promotion
            logger.info(f"Usage of promo {promotion.code} changed concurrently, retrying")
            promotion = await self.promotions.get_by_id(promotion.id)
            if promotion is None:
                raise NotFoundError("Invalid or expired promo code")
        raise ConflictError("Promo code is busy, please try again")
