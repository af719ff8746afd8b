"""
Shared test fixtures.

Uses a throwaway SQLite file (via aiosqlite) per test so tests run
without Docker / PostgreSQL / Redis.  A file rather than ``:memory:``
lets several sessions hold their own connections, which the beaming and
race tests rely on.  Redis is replaced with ``AsyncMock``.
"""

from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from kangga.domain.enums import JobKind, TransactionType
from kangga.domain.matching import assignee_h3_cell
from kangga.infrastructure.database import Base
from kangga.infrastructure.models import AssigneeModel, FareConfigModel, UserModel
from kangga.infrastructure.notifications import Notifier
from kangga.infrastructure.realtime import RealtimeBroker
from kangga.services.jobs import JobService
from kangga.services.wallet import WalletService

# Cebu City
PICKUP = (10.3157, 123.8854)


# ── Test DB (SQLite file) ─────────────────────────────────────────────


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'kangga.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Redis fakes ───────────────────────────────────────────────────────


@pytest.fixture
def redis_mock() -> AsyncMock:
    client = AsyncMock()
    client.publish = AsyncMock(return_value=1)
    return client


@pytest.fixture
def notifier(redis_mock) -> Notifier:
    return Notifier(redis_mock)


@pytest.fixture
def broker(redis_mock) -> RealtimeBroker:
    return RealtimeBroker(redis_mock)


# ── Data builders ─────────────────────────────────────────────────────


class Seeder:
    """Creates committed rows, each in its own short session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._n = 0

    def _email(self) -> str:
        self._n += 1
        return f"user{self._n}@example.com"

    async def requester(self, full_name: str = "Maria Santos") -> UserModel:
        async with self.session_factory() as session:
            user = UserModel(full_name=full_name, email=self._email(), role="passenger")
            session.add(user)
            await session.commit()
            return user

    async def assignee(
        self,
        *,
        role: str = "driver",
        vehicle_type: str = "TRICYCLE",
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        full_name: str = "Ramon Dela Cruz",
        balance: Optional[float] = 100.0,
        available: bool = True,
    ) -> AssigneeModel:
        async with self.session_factory() as session:
            user = UserModel(full_name=full_name, email=self._email(), role=role)
            session.add(user)
            await session.flush()

            assignee = AssigneeModel(
                user_id=user.id,
                role=role,
                vehicle_type=vehicle_type,
                vehicle_plate="TRI-1001",
                is_available=available,
                rating=4.8,
                current_lat=lat,
                current_lng=lng,
                h3_cell=assignee_h3_cell(lat, lng) if lat is not None else None,
            )
            session.add(assignee)

            if balance is not None:
                wallet = WalletService(session)
                await wallet.open_account(user.id, role)
                if balance:
                    await wallet.apply_transaction(
                        user_id=user.id,
                        amount=balance,
                        tx_type=TransactionType.LOAD,
                        reference="Opening load",
                    )
            await session.commit()
            return assignee

    async def job(
        self,
        *,
        kind: JobKind = JobKind.RIDE,
        requester_id: Optional[int] = None,
        base_fare: float = 100.0,
        pickup: Optional[tuple[float, float]] = PICKUP,
        **fields,
    ):
        if requester_id is None:
            requester_id = (await self.requester()).id
        if pickup is not None:
            fields.setdefault("pickup_lat", pickup[0])
            fields.setdefault("pickup_lng", pickup[1])
        if kind == JobKind.DELIVERY:
            fields.setdefault("package_description", "Documents")
            fields.setdefault("receiver_name", "Leo Tan")
            fields.setdefault("receiver_phone", "+639171234567")
        async with self.session_factory() as session:
            return await JobService(session).create_job(
                kind=kind,
                requester_id=requester_id,
                pickup_address="Colon St, Cebu City",
                dropoff_address="Fuente Osmena Circle",
                base_fare=base_fare,
                **fields,
            )

    async def fare_config(self, service_type: str = "CAR", **fields) -> FareConfigModel:
        values = {
            "base_fare": 40.0,
            "per_km": 12.0,
            "per_min": 2.0,
            "min_fare": 45.0,
            "platform_fee_type": "FLAT",
            "platform_fee_value": 5.0,
        }
        values.update(fields)
        async with self.session_factory() as session:
            row = FareConfigModel(service_type=service_type, **values)
            session.add(row)
            await session.commit()
            return row


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


# ── API client ────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_factory, redis_mock):
    """AsyncClient backed by SQLite, a mocked Redis and no background search."""
    with (
        patch(
            "kangga.workers.beaming.start_beaming_worker",
            new_callable=AsyncMock,
        ),
        patch(
            "kangga.workers.beaming.stop_beaming_worker",
            new_callable=AsyncMock,
        ),
        patch("kangga.workers.beaming.schedule_beaming", return_value=True),
    ):
        # DB session dependency
        async def _test_db():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        from kangga.api.app import create_app
        from kangga.api.dependencies import get_broker, get_db, get_notifier

        app = create_app()
        app.dependency_overrides[get_db] = _test_db
        app.dependency_overrides[get_notifier] = lambda: Notifier(redis_mock)
        app.dependency_overrides[get_broker] = lambda: RealtimeBroker(redis_mock)

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
