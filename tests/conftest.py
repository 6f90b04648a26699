"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are used as-is: the
partial unique index on active rides is supported by SQLite too.
Redis is replaced by ``None`` (no cache, no lock) or by ``AsyncMock``.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ridecore.api.dependencies import get_db, get_notifier, get_redis_client
from ridecore.api.middleware import limiter
from ridecore.domain.enums import DriverStatus, PromotionKind
from ridecore.infrastructure.database import Base
from ridecore.infrastructure.models import (
    DriverModel,
    FareSlabModel,
    PromotionModel,
    RiderModel,
    SurgeRuleModel,
)
from ridecore.services.notifications import NotificationDispatcher, Notifier

TEST_DB_URL = "sqlite+aiosqlite://"

# Mumbai: Bandra -> Andheri -> Powai
BANDRA = [72.8400, 19.0540]
ANDHERI = [72.8777, 19.0760]
POWAI = [72.9060, 19.1176]


def location(address: str, coordinates: list[float]) -> dict:
    return {"address": address, "coordinates": list(coordinates)}


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def send(self, event) -> None:
        if self.fail:
            raise ConnectionError("push gateway down")
        self.events.append(event)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def notifier(dispatcher) -> Notifier:
    return Notifier(dispatcher)


@pytest_asyncio.fixture
async def client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    from ridecore.api.app import create_app

    app = create_app()

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _get_redis_client():
        return None

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis_client] = _get_redis_client
    app.dependency_overrides[get_notifier] = lambda: notifier

    limiter.enabled = False
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    limiter.enabled = True


# ── Data builders ─────────────────────────────────────────────────────


async def add_rider(
    session: AsyncSession, rider_id: str = "rider-1", is_active: bool = True
) -> str:
    session.add(RiderModel(id=rider_id, name=f"Rider {rider_id}", is_active=is_active))
    await session.commit()
    return rider_id


async def add_driver(
    session: AsyncSession,
    driver_id: str = "driver-1",
    status: DriverStatus = DriverStatus.ACTIVE,
    vehicle_type: str = "sedan",
) -> str:
    session.add(
        DriverModel(
            id=driver_id,
            name=f"Driver {driver_id}",
            status=status,
            vehicle_type=vehicle_type,
        )
    )
    await session.commit()
    return driver_id


async def add_fare_slab(
    session: AsyncSession,
    vehicle_type: str = "sedan",
    distance_from: str = "0",
    distance_to: str = "100",
    base_fare: str = "80",
    per_unit_rate: str = "15",
    is_active: bool = True,
) -> None:
    session.add(
        FareSlabModel(
            vehicle_type=vehicle_type,
            distance_from=Decimal(distance_from),
            distance_to=Decimal(distance_to),
            base_fare=Decimal(base_fare),
            per_unit_rate=Decimal(per_unit_rate),
            is_active=is_active,
        )
    )
    await session.commit()


async def add_surge_rule(
    session: AsyncSession,
    multiplier: str = "1.5",
    days: Optional[list[int]] = None,
    start_time: str = "00:00",
    end_time: str = "23:59",
) -> None:
    session.add(
        SurgeRuleModel(
            title=f"Surge x{multiplier}",
            days=days if days is not None else [0, 1, 2, 3, 4, 5, 6],
            start_time=start_time,
            end_time=end_time,
            multiplier=Decimal(multiplier),
        )
    )
    await session.commit()


async def add_promotion(
    session: AsyncSession,
    code: str = "FLAT50",
    kind: PromotionKind = PromotionKind.FLAT,
    value: str = "50",
    min_ride_amount: str = "0",
    usage_limit_per_user: int = 1,
    global_usage_limit: Optional[int] = None,
    max_discount_amount: Optional[str] = None,
    valid_days: int = 30,
    is_active: bool = True,
) -> str:
    now = datetime.now(timezone.utc)
    model = PromotionModel(
        code=code,
        kind=kind,
        value=Decimal(value),
        valid_from=now - timedelta(days=1),
        valid_to=now + timedelta(days=valid_days),
        min_ride_amount=Decimal(min_ride_amount),
        usage_limit_per_user=usage_limit_per_user,
        global_usage_limit=global_usage_limit,
        max_discount_amount=(
            Decimal(max_discount_amount) if max_discount_amount is not None else None
        ),
        used_by=[],
        is_active=is_active,
    )
    session.add(model)
    await session.commit()
    return model.id
