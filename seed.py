"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 5 sample riders
  - 6 sample drivers (one per vehicle type, one suspended)
  - fare slabs for sedan, suv, auto and bike
  - 3 surge rules (weekday peaks, late night)
  - 3 promotions (flat, percentage with cap, global-limited)
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import text

from ridecore.infrastructure.database import async_session_factory, engine
from ridecore.infrastructure.models import (
    DriverModel,
    FareSlabModel,
    PromotionModel,
    RiderModel,
    SurgeRuleModel,
)
from ridecore.domain.enums import DriverStatus, PromotionKind


RIDERS = [
    {"name": "Aarav Sharma", "phone": "9820000001"},
    {"name": "Priya Patel", "phone": "9820000002"},
    {"name": "Rohan Mehta", "phone": "9820000003"},
    {"name": "Sneha Gupta", "phone": "9820000004"},
    {"name": "Vikram Singh", "phone": "9820000005"},
]

DRIVERS = [
    {"name": "Ravi Kumar", "vehicle_type": "sedan", "status": DriverStatus.ACTIVE},
    {"name": "Suresh Yadav", "vehicle_type": "suv", "status": DriverStatus.ACTIVE},
    {"name": "Imran Shaikh", "vehicle_type": "auto", "status": DriverStatus.ACTIVE},
    {"name": "Deepak Rao", "vehicle_type": "bike", "status": DriverStatus.ACTIVE},
    {"name": "Manoj Pillai", "vehicle_type": "car", "status": DriverStatus.ACTIVE},
    {"name": "Ajay Verma", "vehicle_type": "sedan", "status": DriverStatus.SUSPENDED},
]

# (vehicle_type, from_km, to_km, base_fare, per_km)
FARE_SLABS = [
    ("sedan", "0", "10", "80", "15"),
    ("sedan", "10.001", "30", "100", "13"),
    ("sedan", "30.001", "200", "150", "12"),
    ("suv", "0", "10", "100", "18"),
    ("suv", "10.001", "200", "130", "16"),
    ("auto", "0", "15", "40", "10"),
    ("bike", "0", "20", "30", "7"),
]

WEEKDAYS = [1, 2, 3, 4, 5]

SURGE_RULES = [
    {"title": "Morning peak", "days": WEEKDAYS, "start": "08:00", "end": "10:30", "multiplier": "1.5"},
    {"title": "Evening peak", "days": WEEKDAYS, "start": "17:30", "end": "20:30", "multiplier": "1.8"},
    {"title": "Late night", "days": [0, 1, 2, 3, 4, 5, 6], "start": "23:00", "end": "23:59", "multiplier": "1.3"},
]


def promotions() -> list[dict]:
    return [
        {
            "code": "FLAT50",
            "kind": PromotionKind.FLAT,
            "value": Decimal("50"),
            "description": "Flat 50 off on rides above 100",
            "min_ride_amount": Decimal("100"),
            "usage_limit_per_user": 2,
        },
        {
            "code": "SAVE20",
            "kind": PromotionKind.PERCENTAGE,
            "value": Decimal("20"),
            "description": "20% off, up to 75",
            "max_discount_amount": Decimal("75"),
        },
        {
            "code": "FIRST100",
            "kind": PromotionKind.FLAT,
            "value": Decimal("100"),
            "description": "100 off for the first 100 riders",
            "min_ride_amount": Decimal("250"),
            "global_usage_limit": 100,
        },
    ]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM riders"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Riders / drivers ──────────────────────────────────────────
        session.add_all(RiderModel(**r) for r in RIDERS)
        session.add_all(DriverModel(**d) for d in DRIVERS)
        await session.flush()
        print(f"  Created {len(RIDERS)} riders and {len(DRIVERS)} drivers")

        # ── Pricing configuration ─────────────────────────────────────
        for vehicle_type, lo, hi, base, rate in FARE_SLABS:
            session.add(
                FareSlabModel(
                    vehicle_type=vehicle_type,
                    distance_from=Decimal(lo),
                    distance_to=Decimal(hi),
                    base_fare=Decimal(base),
                    per_unit_rate=Decimal(rate),
                )
            )
        for rule in SURGE_RULES:
            session.add(
                SurgeRuleModel(
                    title=rule["title"],
                    days=rule["days"],
                    start_time=rule["start"],
                    end_time=rule["end"],
                    multiplier=Decimal(rule["multiplier"]),
                )
            )
        await session.flush()
        print(f"  Created {len(FARE_SLABS)} fare slabs and {len(SURGE_RULES)} surge rules")

        # ── Promotions ────────────────────────────────────────────────
        now = datetime.now(timezone.utc)
        promos = promotions()
        for p in promos:
            session.add(
                PromotionModel(
                    valid_from=now - timedelta(days=1),
                    valid_to=now + timedelta(days=90),
                    used_by=[],
                    **p,
                )
            )
        await session.flush()
        print(f"  Created {len(promos)} promotions")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
