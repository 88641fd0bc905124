"""
Failure scenario tests.

Tests system behavior under failure conditions:
- Store commit hangs
- Lock held too long by another request
- Store raises mid-workflow
- Corrupted occupancy state
- Broken event observers
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from parkflow.application.parking_session import ParkingSessionService
from parkflow.domain.errors import ConsistencyError, LockTimeoutError
from parkflow.domain.models import EventKind, PaymentMethod, SpotStatus, VehicleClass
from parkflow.infrastructure.memory import InMemoryStore

ENTRY = datetime(2026, 3, 2, 10, 0, 0)
REGULAR_SPOT = "F1-R1-S4"
PLATE = "ABC1234"


@pytest.fixture
def fast_settings(settings):
    """Settings with very short lock and commit timeouts."""
    return settings.model_copy(
        update={"lock_timeout_seconds": 0.05, "store_timeout_seconds": 0.05}
    )


class TestStoreFailures:
    """Tests for store failure scenarios."""

    @pytest.mark.asyncio
    async def test_commit_timeout_rolls_back(
        self, facility, memory_db, locks, event_bus, events, fast_settings
    ):
        """A commit that never returns surfaces as LockTimeoutError and leaves no trace."""
        store = InMemoryStore(memory_db)

        async def hanging_commit() -> None:
            await asyncio.sleep(1)

        store.commit = hanging_commit
        service = ParkingSessionService(store, locks=locks, event_bus=event_bus, settings=fast_settings)

        with pytest.raises(LockTimeoutError):
            await service.enter(PLATE, VehicleClass.STANDARD, REGULAR_SPOT, now=ENTRY)

        assert memory_db.spots[REGULAR_SPOT].status == SpotStatus.AVAILABLE
        assert memory_db.tickets == {}
        assert events == []
        assert len(locks.plates) == 0
        assert len(locks.spots) == 0

    @pytest.mark.asyncio
    async def test_store_error_during_exit(
        self, sessions, memory_db, locks, event_bus, events, settings
    ):
        await sessions.enter(PLATE, VehicleClass.STANDARD, REGULAR_SPOT, now=ENTRY)
        events.clear()

        store = InMemoryStore(memory_db)
        store.payments.add = AsyncMock(side_effect=RuntimeError("database unavailable"))
        service = ParkingSessionService(store, locks=locks, event_bus=event_bus, settings=settings)

        with pytest.raises(RuntimeError):
            await service.exit(PLATE, "10", PaymentMethod.CASH, exit_time=ENTRY + timedelta(hours=1))

        assert memory_db.spots[REGULAR_SPOT].status == SpotStatus.OCCUPIED
        assert memory_db.payments == {}
        assert all(t.is_open for t in memory_db.tickets.values())
        assert events == []


class TestLockFailures:
    """Tests for lock contention."""

    @pytest.mark.asyncio
    async def test_plate_lock_timeout(self, facility, memory_db, locks, event_bus, fast_settings):
        service = ParkingSessionService(
            InMemoryStore(memory_db), locks=locks, event_bus=event_bus, settings=fast_settings
        )

        async with locks.plates.hold(PLATE):
            with pytest.raises(LockTimeoutError):
                await service.enter(PLATE, VehicleClass.STANDARD, REGULAR_SPOT)

        assert memory_db.spots[REGULAR_SPOT].is_available

    @pytest.mark.asyncio
    async def test_spot_lock_timeout(self, facility, memory_db, locks, event_bus, fast_settings):
        service = ParkingSessionService(
            InMemoryStore(memory_db), locks=locks, event_bus=event_bus, settings=fast_settings
        )

        async with locks.spots.hold(REGULAR_SPOT):
            with pytest.raises(LockTimeoutError):
                await service.enter(PLATE, VehicleClass.STANDARD, REGULAR_SPOT)

        assert PLATE not in memory_db.vehicles


class TestStateFailures:
    @pytest.mark.asyncio
    async def test_exit_with_foreign_occupant(self, sessions, service_factory, memory_db):
        """Exit halts when the spot no longer holds the ticket's plate."""
        await sessions.enter(PLATE, VehicleClass.STANDARD, REGULAR_SPOT, now=ENTRY)
        memory_db.spots[REGULAR_SPOT].occupant_plate = "XYZ9876"

        with pytest.raises(ConsistencyError):
            await service_factory().exit(PLATE, "10", PaymentMethod.CASH)

        assert memory_db.payments == {}

    @pytest.mark.asyncio
    async def test_broken_observer_does_not_undo_exit(self, sessions, event_bus, memory_db):
        def broken(event) -> None:
            raise RuntimeError("dashboard offline")

        event_bus.subscribe(broken, kinds=[EventKind.PAYMENT_PROCESSED])
        await sessions.enter(PLATE, VehicleClass.STANDARD, REGULAR_SPOT, now=ENTRY)

        receipt = await sessions.exit(
            PLATE, "10", PaymentMethod.CASH, exit_time=ENTRY + timedelta(hours=1)
        )

        assert receipt.ticket.exit_time is not None
        assert memory_db.spots[REGULAR_SPOT].is_available
        assert len(memory_db.payments) == 1
