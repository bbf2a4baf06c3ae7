"""
Shared test fixtures.

Integration-style tests run against an in-memory SQLite database (one shared
connection through StaticPool) created from the ORM metadata.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DATABASE_AUTO_CREATE", "false")
os.environ.setdefault("PYTHON_ENV", "test")

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from enrollment_hub.core.broadcast import BroadcastHub, get_hub
from enrollment_hub.core.database import Base, get_db
from enrollment_hub.core.rate_limit import reset_memory_store
from enrollment_hub.main import app
from enrollment_hub.modules.classes import models as _class_models  # noqa: F401
from enrollment_hub.modules.enrollments import models as _enrollment_models  # noqa: F401
from enrollment_hub.modules.enrollments.coordinator import EnrollmentCoordinator, get_coordinator


class FakeClock:
    """Controllable time source for offer deadlines."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSubscriber:
    """Realtime subscriber that stores every message it receives."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data) -> None:
        self.messages.append(data)

    def events(self, event_type: str | None = None) -> list[dict]:
        return [
            message
            for message in self.messages
            if event_type is None or message.get("event") == event_type
        ]


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def hub():
    return BroadcastHub(send_timeout=0.5)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    reset_memory_store()
    yield
    reset_memory_store()


@pytest.fixture
def subscriber_factory():
    return RecordingSubscriber


@pytest_asyncio.fixture
async def api_client(session_factory, hub, clock):
    """HTTP client for the app, wired to the test database and hub (lifespan not run)."""
    coordinator = EnrollmentCoordinator(
        session_factory=session_factory,
        hub=hub,
        notifier=MagicMock(),
        clock=clock,
    )

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_hub] = lambda: hub

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
