"""Pytest configuration and fixtures."""

import json
from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fieldtelemetry.core.deps import get_db
from fieldtelemetry.db.base import Base
from fieldtelemetry.db import models_registry  # noqa: F401 - Import to register models
from fieldtelemetry.main import app
from fieldtelemetry.models.alert import AlertRule
from fieldtelemetry.models.device import Device
from fieldtelemetry.protocol.frame import RawSensorRecord, encode_frame
from fieldtelemetry.protocol.sensor_types import SensorKind
from fieldtelemetry.schemas.notification import NotificationRequest
from fieldtelemetry.services.state_store import InMemoryStateStore, get_state_store

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEVICE_ID = "ctrl-001"


class FakeSink:
    """Collects submitted notifications instead of sending them."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.requests: list[NotificationRequest] = []

    def submit(self, request: NotificationRequest) -> bool:
        if self.accept:
            self.requests.append(request)
        return self.accept

    def kinds(self) -> list[str]:
        return [r.kind for r in self.requests]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store() -> InMemoryStateStore:
    """Fresh per-test state store."""
    return InMemoryStateStore()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def full_sink() -> FakeSink:
    """Sink whose queue is always full."""
    return FakeSink(accept=False)


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession, store: InMemoryStateStore
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with overridden dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_state_store] = lambda: store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def sample_device(db_session: AsyncSession) -> Device:
    """Create a registered device with two recipients."""
    device = Device(
        device_id=DEVICE_ID,
        device_name="Greenhouse A",
        device_location="North field",
        owner_name="Kim",
        recipients=json.dumps(["010-1234-5678", "01098765432"]),
    )
    db_session.add(device)
    await db_session.commit()
    return device


@pytest_asyncio.fixture(scope="function")
async def sample_rules(db_session: AsyncSession, sample_device: Device) -> list[AlertRule]:
    """Create temperature-above and humidity-below rules on SHT20_CH1."""
    rules = [
        AlertRule(
            device_id=DEVICE_ID,
            sensor_type=SensorKind.SHT20.value,
            sensor_name="SHT20_CH1",
            value_index=0,
            condition_type="above",
            threshold_value=30.0,
            is_active=True,
            current_state="normal",
        ),
        AlertRule(
            device_id=DEVICE_ID,
            sensor_type=SensorKind.SHT20.value,
            sensor_name="SHT20_CH1",
            value_index=1,
            condition_type="below",
            threshold_value=40.0,
            is_active=True,
            current_state="normal",
        ),
    ]
    for rule in rules:
        db_session.add(rule)
    await db_session.commit()
    return rules


BASE_TIME = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def sht20_frame():
    """Factory encoding a one-record SHT20 frame."""

    def build(temperature: float, humidity: float, position: int = 1) -> bytes:
        record = RawSensorRecord.build(
            sensor_id=1,
            type_code=SensorKind.SHT20,
            position=position,
            registers=[round(temperature * 100), round(humidity * 100)],
        )
        return encode_frame([record], device_time=1_700_000_000)

    return build


@pytest.fixture
def at():
    """Fixed test clock: ``at(m)`` is m minutes after a base instant."""

    def clock(minute: float) -> datetime:
        return BASE_TIME + timedelta(minutes=minute)

    return clock
