"""Pytest fixtures for testing"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from oar_engine.api.main import create_app
from oar_engine.config import Settings
from oar_engine.domain.models import Bill, BillEvent, BillStatus
from oar_engine.infrastructure.database.models import Base
from oar_engine.infrastructure.database.repositories import SqlBillStore
from oar_engine.infrastructure.database.session import create_db_engine, create_session_factory, init_schema
from oar_engine.services.engine import BillEngine

# In-memory database shared through a single connection
TEST_DATABASE_URL = "sqlite://"

NOW = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock whose time only moves when told to; sleep advances it instantly"""

    def __init__(self, now: datetime):
        self.current = now
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)
        await asyncio.sleep(0)


class RecordingNotifier:
    """Notifier that keeps events in memory"""

    def __init__(self):
        self.events: List[BillEvent] = []

    async def send(self, event: BillEvent) -> None:
        self.events.append(event)


def build_bill(**overrides) -> Bill:
    """Domain bill with sensible defaults for unit tests"""
    values = dict(
        id="bill-1",
        title="Rent",
        amount_cents=150000,
        frequency="monthly",
        due_date=date(2025, 1, 10),
        status=BillStatus.PENDING,
        auto_pay=False,
        version=1,
    )
    values.update(overrides)
    return Bill(**values)


@pytest.fixture
def make_bill():
    """Factory for in-memory bills"""
    return build_bill


@pytest.fixture
def db_engine() -> Generator[Engine, None, None]:
    """Create test database"""
    engine = create_db_engine(TEST_DATABASE_URL)
    init_schema(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def store(db_engine: Engine) -> SqlBillStore:
    return SqlBillStore(create_session_factory(db_engine))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        scheduler_enabled=True,
        scheduler_interval_seconds=300,
        notification_webhook_url=None,
        strict_frequency=False,
    )


@pytest.fixture
def bill_engine(store: SqlBillStore, clock: FakeClock, notifier: RecordingNotifier, test_settings: Settings) -> BillEngine:
    return BillEngine(store, clock=clock, notifier=notifier, config=test_settings)


@pytest.fixture
def client(store: SqlBillStore, clock: FakeClock, test_settings: Settings) -> TestClient:
    """Create FastAPI test client around an engine using the test database"""
    engine = BillEngine(store, clock=clock, config=test_settings)
    app = create_app(engine)
    return TestClient(app)
