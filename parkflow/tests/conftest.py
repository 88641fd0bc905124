"""
Pytest configuration and fixtures.

Provides shared fixtures for testing including:
- Test settings with a small facility layout
- In-memory stores sharing one database
- SQLite-backed SQL store
- Service instances with fresh locks and event bus
- Test client with overridden dependencies
"""

from collections.abc import Callable
from typing import AsyncIterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from parkflow.application.admin_service import FacilityAdminService
from parkflow.application.events import EventBus
from parkflow.application.locks import LockRegistry
from parkflow.application.parking_session import ParkingSessionService
from parkflow.core.config import Settings
from parkflow.domain.models import Event
from parkflow.infrastructure.db.models import Base
from parkflow.infrastructure.db.repository import SqlStore
from parkflow.infrastructure.memory import InMemoryStore, MemoryDatabase

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    """Settings for a two-floor facility with one row per floor."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        total_floors=2,
        rows_per_floor=1,
        lock_timeout_seconds=1.0,
        store_timeout_seconds=1.0,
        log_format="text",
    )


@pytest.fixture
def memory_db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture
def store(memory_db: MemoryDatabase) -> InMemoryStore:
    return InMemoryStore(memory_db)


@pytest.fixture
def locks() -> LockRegistry:
    return LockRegistry()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events(event_bus: EventBus) -> list[Event]:
    """Every event published on the test bus, in order."""
    received: list[Event] = []
    event_bus.subscribe(received.append)
    return received


@pytest.fixture
def admin(store, locks, event_bus, settings) -> FacilityAdminService:
    return FacilityAdminService(store, locks=locks, event_bus=event_bus, settings=settings)


@pytest.fixture
async def facility(admin: FacilityAdminService) -> FacilityAdminService:
    """Admin service over a freshly seeded layout."""
    await admin.initialize_layout()
    return admin


@pytest.fixture
def service_factory(
    memory_db, locks, event_bus, settings
) -> Callable[[], ParkingSessionService]:
    """Build a session service with its own unit of work, as one request would."""

    def build() -> ParkingSessionService:
        return ParkingSessionService(
            InMemoryStore(memory_db),
            locks=locks,
            event_bus=event_bus,
            settings=settings,
        )

    return build


@pytest.fixture
def sessions(facility, service_factory) -> ParkingSessionService:
    """Session service over the seeded facility."""
    return service_factory()


@pytest.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    """Create a test database session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def sql_store(db_session: AsyncSession) -> SqlStore:
    return SqlStore(db_session)


@pytest.fixture
def test_client(facility, memory_db, locks, event_bus, settings) -> TestClient:
    """
    Create test client backed by the in-memory store.

    The lifespan is not entered, so no database is touched; the layout
    comes from the seeded in-memory facility.
    """
    from parkflow.api.deps import get_event_bus, get_lock_registry, get_settings, get_store
    from parkflow.main import app

    async def override_store() -> AsyncIterator[InMemoryStore]:
        yield InMemoryStore(memory_db)

    app.dependency_overrides[get_store] = override_store
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_lock_registry] = lambda: locks
    app.dependency_overrides[get_event_bus] = lambda: event_bus

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
