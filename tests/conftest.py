"""Shared fixtures: a throwaway SQLite database per test and wired services."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401
from app.database import Base
from app.domain.capacity_ledger import CapacityLedger
from app.gateways.base import GatewayType
from app.gateways.manual import ManualGateway
from app.models.parking import ParkingSpace, SpaceType
from app.models.user import User
from app.services.booking_service import BookingService
from app.services.gateway_service import GatewayService
from app.services.notification_service import NotificationService
from app.services.payment_service import PaymentService
from app.services.reconciliation_service import ReconciliationService


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger() -> CapacityLedger:
    return CapacityLedger()


@pytest.fixture
def notifications() -> NotificationService:
    return NotificationService(send_timeout=0.2)


@pytest.fixture
def gateways() -> GatewayService:
    return GatewayService({GatewayType.MANUAL: ManualGateway()})


@pytest.fixture
def payments(gateways) -> PaymentService:
    return PaymentService(gateways)


@pytest.fixture
def bookings(ledger, notifications, payments) -> BookingService:
    return BookingService(ledger=ledger, notifications=notifications, payments=payments, hold_minutes=10)


@pytest.fixture
def reconciliation(bookings, gateways) -> ReconciliationService:
    return ReconciliationService(bookings=bookings, gateways=gateways)


async def _add(session: AsyncSession, *objects):
    session.add_all(objects)
    await session.commit()
    return objects


@pytest_asyncio.fixture
async def owner(db) -> User:
    (user,) = await _add(db, User(email="owner@parkspot.in", full_name="Space Owner", role="owner"))
    return user


@pytest_asyncio.fixture
async def customer(db) -> User:
    (user,) = await _add(db, User(email="customer@parkspot.in", full_name="Asha Rao", role="customer"))
    return user


@pytest_asyncio.fixture
async def other_customer(db) -> User:
    (user,) = await _add(db, User(email="second@parkspot.in", full_name="Vikram Shah", role="customer"))
    return user


@pytest_asyncio.fixture
async def admin(db) -> User:
    (user,) = await _add(db, User(email="admin@parkspot.in", full_name="Admin", role="admin"))
    return user


@pytest_asyncio.fixture
async def parking_space(db, owner) -> ParkingSpace:
    (space,) = await _add(
        db,
        ParkingSpace(owner_id=owner.id, title="MG Road Parking", address="MG Road", instant_booking=False),
    )
    return space


@pytest_asyncio.fixture
async def space_type(db, parking_space) -> SpaceType:
    (space_type,) = await _add(
        db,
        SpaceType(
            parking_space_id=parking_space.id,
            name="four-wheeler",
            capacity=1,
            price_per_hour=5000,
            currency="INR",
        ),
    )
    return space_type


@pytest_asyncio.fixture
async def instant_space_type(db, owner) -> SpaceType:
    space = ParkingSpace(owner_id=owner.id, title="Airport Lot", instant_booking=True)
    await _add(db, space)
    (space_type,) = await _add(
        db,
        SpaceType(parking_space_id=space.id, name="two-wheeler", capacity=3, price_per_hour=2000),
    )
    return space_type
