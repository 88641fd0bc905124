"""
Integration tests for the SQLAlchemy store.

Uses in-memory SQLite via aiosqlite.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from parkflow.application.admin_service import FacilityAdminService
from parkflow.application.parking_session import ParkingSessionService
from parkflow.domain.errors import IncompatibleSpotError, SpotUnavailableError
from parkflow.domain.models import (
    Fine,
    FineKind,
    FineScheme,
    ParkingSpot,
    Payment,
    PaymentMethod,
    Reservation,
    SpotCategory,
    SpotStatus,
    Ticket,
    Vehicle,
    VehicleClass,
)
from parkflow.infrastructure.db.repository import SqlStore

ENTRY = datetime(2026, 3, 2, 10, 0, 0)


class TestSqlSpotRepository:
    """Tests for SqlSpotRepository."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, sql_store: SqlStore):
        await sql_store.spots.add(ParkingSpot.create(1, 2, 3, SpotCategory.REGULAR))
        await sql_store.commit()

        spot = await sql_store.spots.get("F1-R2-S3")

        assert spot is not None
        assert spot.category == SpotCategory.REGULAR
        assert spot.hourly_rate == Decimal("5.00")
        assert spot.status == SpotStatus.AVAILABLE
        assert await sql_store.spots.count() == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, sql_store: SqlStore):
        assert await sql_store.spots.get("F1-R1-S1") is None

    @pytest.mark.asyncio
    async def test_conditional_occupancy(self, sql_store: SqlStore):
        await sql_store.spots.add(ParkingSpot.create(1, 1, 1, SpotCategory.COMPACT))

        assert await sql_store.spots.mark_occupied("F1-R1-S1", "ABC1234") is True
        assert await sql_store.spots.mark_occupied("F1-R1-S1", "XYZ9876") is False
        assert (await sql_store.spots.get("F1-R1-S1")).occupant_plate == "ABC1234"

        assert await sql_store.spots.mark_available("F1-R1-S1") is True
        assert await sql_store.spots.mark_available("F1-R1-S1") is False

    @pytest.mark.asyncio
    async def test_find_many_ordering(self, sql_store: SqlStore):
        for floor, row, index, category in [
            (2, 1, 1, SpotCategory.REGULAR),
            (1, 1, 2, SpotCategory.REGULAR),
            (1, 1, 1, SpotCategory.COMPACT),
        ]:
            await sql_store.spots.add(ParkingSpot.create(floor, row, index, category))

        regular = await sql_store.spots.find_many(categories=[SpotCategory.REGULAR])
        every = await sql_store.spots.find_many()

        assert [s.spot_id for s in regular] == ["F1-R1-S2", "F2-R1-S1"]
        assert [s.spot_id for s in every] == ["F1-R1-S1", "F1-R1-S2", "F2-R1-S1"]

    @pytest.mark.asyncio
    async def test_rollback_discards_changes(self, sql_store: SqlStore):
        await sql_store.spots.add(ParkingSpot.create(1, 1, 1, SpotCategory.COMPACT))
        await sql_store.commit()

        await sql_store.spots.mark_occupied("F1-R1-S1", "ABC1234")
        await sql_store.rollback()

        assert (await sql_store.spots.get("F1-R1-S1")).is_available


class TestSqlLedgerRepositories:
    """Tickets, vehicles, fines, payments and reservations."""

    @pytest.mark.asyncio
    async def test_vehicle_balance(self, sql_store: SqlStore):
        await sql_store.vehicles.add(Vehicle(plate="ABC1234", vehicle_class=VehicleClass.LARGE))

        assert await sql_store.vehicles.update_balance("ABC1234", Decimal("-12.5")) is True
        assert await sql_store.vehicles.update_balance("XYZ9876", Decimal("1")) is False

        vehicle = await sql_store.vehicles.get("ABC1234")
        assert vehicle.vehicle_class == VehicleClass.LARGE
        assert vehicle.balance == Decimal("-12.50")

    @pytest.mark.asyncio
    async def test_ticket_open_and_close(self, sql_store: SqlStore):
        await sql_store.tickets.add(
            Ticket(
                ticket_id="T-ABC1234-0001",
                plate="ABC1234",
                spot_id="F1-R1-S4",
                entry_time=ENTRY,
                fine_scheme=FineScheme.PROGRESSIVE,
            )
        )

        assert (await sql_store.tickets.open_for_plate("ABC1234")).ticket_id == "T-ABC1234-0001"
        assert await sql_store.tickets.count_open() == 1

        assert await sql_store.tickets.close("T-ABC1234-0001", ENTRY + timedelta(hours=1)) is True
        assert await sql_store.tickets.close("T-ABC1234-0001", ENTRY + timedelta(hours=2)) is False

        ticket = await sql_store.tickets.get("T-ABC1234-0001")
        assert ticket.exit_time == ENTRY + timedelta(hours=1)
        assert ticket.fine_scheme == FineScheme.PROGRESSIVE
        assert await sql_store.tickets.open_for_plate("ABC1234") is None

    @pytest.mark.asyncio
    async def test_fines_and_payment(self, sql_store: SqlStore):
        older = await sql_store.fines.add(
            Fine(
                plate="ABC1234",
                ticket_id="T-1",
                kind=FineKind.OVERSTAY,
                amount=Decimal("150"),
                scheme=FineScheme.PROGRESSIVE,
                created_at=ENTRY,
            )
        )
        newer = await sql_store.fines.add(
            Fine(
                plate="ABC1234",
                ticket_id="T-2",
                kind=FineKind.RESERVED_MISUSE,
                amount=Decimal("50"),
                scheme=FineScheme.FIXED,
                created_at=ENTRY + timedelta(days=1),
            )
        )

        unpaid = await sql_store.fines.list_unpaid("ABC1234")
        assert [f.id for f in unpaid] == [older.id, newer.id]
        assert await sql_store.fines.total_unpaid() == Decimal("200.00")
        assert (await sql_store.fines.for_ticket("T-2", FineKind.RESERVED_MISUSE)).id == newer.id

        payment = await sql_store.payments.add(
            Payment(
                ticket_id="T-2",
                parking_fee=Decimal("10"),
                fine_amount=Decimal("150"),
                method=PaymentMethod.CARD,
                paid_at=ENTRY + timedelta(days=1),
                paid_fine_ids=(older.id,),
            )
        )
        assert await sql_store.fines.mark_paid([older.id], payment.id) == 1
        assert await sql_store.fines.mark_paid([older.id], payment.id) == 0

        stored = await sql_store.payments.get(payment.id)
        assert stored.paid_fine_ids == (older.id,)
        assert stored.total == Decimal("160.00")

        totals = await sql_store.payments.totals()
        assert totals.parking_total == Decimal("10.00")
        assert totals.fine_total == Decimal("150.00")
        assert totals.count == 1
        assert await sql_store.fines.total_unpaid("ABC1234") == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_remove_unpaid_fine(self, sql_store: SqlStore):
        fine = await sql_store.fines.add(
            Fine(
                plate="ABC1234",
                ticket_id="T-1",
                kind=FineKind.OVERSTAY,
                amount=Decimal("50"),
                scheme=FineScheme.FIXED,
                created_at=ENTRY,
            )
        )

        assert await sql_store.fines.remove_unpaid(fine.id) is True
        assert await sql_store.fines.remove_unpaid(fine.id) is False
        assert await sql_store.fines.for_ticket("T-1", FineKind.OVERSTAY) is None

    @pytest.mark.asyncio
    async def test_reservations(self, sql_store: SqlStore):
        await sql_store.spots.add(ParkingSpot.create(1, 1, 10, SpotCategory.RESERVED))
        reservation = await sql_store.reservations.add(
            Reservation(spot_id="F1-R1-S10", reserved_at=ENTRY)
        )

        active = await sql_store.reservations.active_for_spot("F1-R1-S10")
        assert active.id == reservation.id
        assert active.plate is None

        active.plate = "ABC1234"
        active.is_active = False
        await sql_store.reservations.update(active)

        assert await sql_store.reservations.active_for_spot("F1-R1-S10") is None
        assert await sql_store.reservations.list_active() == []
        [past] = await sql_store.reservations.history("F1-R1-S10")
        assert past.plate == "ABC1234"

    @pytest.mark.asyncio
    async def test_config(self, sql_store: SqlStore):
        assert await sql_store.config.get("fine_scheme") is None

        await sql_store.config.set("fine_scheme", "hourly")
        await sql_store.config.set("fine_scheme", "fixed")

        assert await sql_store.config.get("fine_scheme") == "fixed"


class TestSqlWorkflow:
    """The session workflows running on the SQL store."""

    @pytest.fixture
    async def sql_facility(self, sql_store, locks, event_bus, settings):
        admin = FacilityAdminService(sql_store, locks=locks, event_bus=event_bus, settings=settings)
        await admin.initialize_layout()
        return admin

    @pytest.fixture
    def sql_sessions(self, sql_facility, sql_store, locks, event_bus, settings):
        return ParkingSessionService(sql_store, locks=locks, event_bus=event_bus, settings=settings)

    @pytest.mark.asyncio
    async def test_layout_seeded(self, sql_facility):
        stats = await sql_facility.occupancy_stats()

        assert stats.total == 20
        assert await sql_facility.current_fine_scheme() == FineScheme.FIXED

    @pytest.mark.asyncio
    async def test_enter_and_exit(self, sql_sessions, sql_store, sql_facility):
        ticket = await sql_sessions.enter("ABC1234", VehicleClass.STANDARD, "F1-R1-S4", now=ENTRY)

        with pytest.raises(SpotUnavailableError):
            await sql_sessions.enter("XYZ9876", VehicleClass.STANDARD, "F1-R1-S4", now=ENTRY)

        receipt = await sql_sessions.exit(
            "ABC1234", "200", PaymentMethod.CASH, exit_time=ENTRY + timedelta(hours=26)
        )

        assert receipt.ticket.ticket_id == ticket.ticket_id
        assert receipt.bill.parking_fee == Decimal("130.00")
        assert receipt.settlement.fine_amount_paid == Decimal("50.00")
        assert receipt.settlement.new_balance == Decimal("20.00")

        assert (await sql_store.spots.get("F1-R1-S4")).is_available
        assert (await sql_store.vehicles.get("ABC1234")).balance == Decimal("20.00")
        assert await sql_store.fines.total_unpaid() == Decimal("0.00")

        revenue = await sql_facility.revenue_stats()
        assert revenue.total == Decimal("180.00")

    @pytest.mark.asyncio
    async def test_failed_entry_rolled_back(self, sql_sessions, sql_store):
        with pytest.raises(IncompatibleSpotError):
            await sql_sessions.enter("ABC1234", VehicleClass.LARGE, "F1-R1-S1", now=ENTRY)

        assert await sql_store.vehicles.get("ABC1234") is None
        assert (await sql_store.spots.get("F1-R1-S1")).is_available

    @pytest.mark.asyncio
    async def test_reserved_entry_with_reservation(self, sql_sessions, sql_facility, sql_store):
        reservation = await sql_facility.reserve_spot("F2-R1-S10", "ABC1234")

        ticket = await sql_sessions.enter("ABC1234", VehicleClass.STANDARD, "F2-R1-S10", now=ENTRY)
        receipt = await sql_sessions.exit(
            "ABC1234", "10", PaymentMethod.CARD, exit_time=ENTRY + timedelta(minutes=10)
        )

        assert ticket.reservation_id == reservation.id
        assert receipt.bill.new_fines == ()
        assert (await sql_store.reservations.get(reservation.id)).is_active is False

    @pytest.mark.asyncio
    async def test_earlier_exit_withdraws_quoted_fine(self, sql_sessions, sql_store):
        ticket = await sql_sessions.enter("ABC1234", VehicleClass.STANDARD, "F1-R1-S4", now=ENTRY)
        await sql_sessions.quote("ABC1234", exit_time=ENTRY + timedelta(hours=30))

        receipt = await sql_sessions.exit(
            "ABC1234", "100", PaymentMethod.CASH, exit_time=ENTRY + timedelta(hours=2)
        )

        assert receipt.bill.payable_fines == ()
        assert receipt.settlement.fine_amount_paid == Decimal("0.00")
        assert receipt.settlement.new_balance == Decimal("90.00")
        assert await sql_store.fines.for_ticket(ticket.ticket_id, FineKind.OVERSTAY) is None
        assert await sql_store.fines.total_unpaid("ABC1234") == Decimal("0.00")
