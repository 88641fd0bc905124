"""
Unit tests for the application components.

Each component runs against a seeded in-memory store: two floors, one
row each, spots S1-S3 compact, S4-S8 regular, S9 accessible, S10 reserved.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from parkflow.application.billing import BillingCalculator
from parkflow.application.fine_engine import FineEngine
from parkflow.application.reservations import ReservationManager
from parkflow.application.spot_allocator import SpotAllocator
from parkflow.application.ticket_ledger import TicketLedger, new_ticket_id
from parkflow.domain.errors import (
    ConsistencyError,
    NoActiveReservationError,
    NotReservedCategoryError,
    OpenTicketExistsError,
    ReservationConflictError,
    ReservationNotFoundError,
    SpotNotFoundError,
    SpotUnavailableError,
    TicketAlreadyClosedError,
    TicketNotFoundError,
    ValidationError,
)
from parkflow.domain.models import (
    FineKind,
    FineScheme,
    SpotCategory,
    SpotStatus,
    Vehicle,
    VehicleClass,
)
from parkflow.infrastructure.store import FINE_SCHEME_KEY

ENTRY = datetime(2026, 3, 2, 10, 0, 0)
COMPACT_SPOT = "F1-R1-S1"
REGULAR_SPOT = "F1-R1-S4"
ACCESSIBLE_SPOT = "F1-R1-S9"
RESERVED_SPOT = "F1-R1-S10"


class TestSpotAllocator:
    """Tests for SpotAllocator."""

    @pytest.fixture
    def allocator(self, facility, store) -> SpotAllocator:
        return SpotAllocator(store)

    @pytest.mark.asyncio
    async def test_allocate_and_release(self, allocator: SpotAllocator):
        spot = await allocator.allocate(REGULAR_SPOT, "ABC1234")
        assert spot.status == SpotStatus.OCCUPIED
        assert spot.occupant_plate == "ABC1234"

        released = await allocator.release(REGULAR_SPOT)
        assert released.is_available
        assert released.occupant_plate is None

    @pytest.mark.asyncio
    async def test_double_allocation_conflicts(self, allocator: SpotAllocator):
        await allocator.allocate(REGULAR_SPOT, "ABC1234")

        with pytest.raises(SpotUnavailableError):
            await allocator.allocate(REGULAR_SPOT, "XYZ9876")

    @pytest.mark.asyncio
    async def test_release_available_spot_is_error(self, allocator: SpotAllocator):
        with pytest.raises(SpotUnavailableError):
            await allocator.release(REGULAR_SPOT)

    @pytest.mark.asyncio
    async def test_unknown_spot(self, allocator: SpotAllocator):
        with pytest.raises(SpotNotFoundError):
            await allocator.get("F9-R9-S9")

    @pytest.mark.asyncio
    async def test_inconsistent_spot_detected(self, allocator: SpotAllocator, memory_db):
        memory_db.spots[REGULAR_SPOT].occupant_plate = "ABC1234"

        with pytest.raises(ConsistencyError):
            await allocator.get(REGULAR_SPOT)

    @pytest.mark.asyncio
    async def test_candidates_for_two_wheeler(self, allocator: SpotAllocator):
        """Compact spots plus the always-listed reserved spots, in layout order."""
        spots = await allocator.find_candidates(VehicleClass.TWO_WHEEL, floor=1)

        assert [s.spot_id for s in spots] == [
            "F1-R1-S1",
            "F1-R1-S2",
            "F1-R1-S3",
            RESERVED_SPOT,
        ]

    @pytest.mark.asyncio
    async def test_candidates_exclude_occupied(self, allocator: SpotAllocator):
        await allocator.allocate("F1-R1-S5", "ABC1234")

        spots = await allocator.find_candidates(VehicleClass.LARGE)

        ids = [s.spot_id for s in spots]
        assert "F1-R1-S5" not in ids
        assert ids[0] == REGULAR_SPOT
        assert all(s.category in (SpotCategory.REGULAR, SpotCategory.RESERVED) for s in spots)

    @pytest.mark.asyncio
    async def test_change_category_resets_rate(self, allocator: SpotAllocator):
        spot = await allocator.change_category(REGULAR_SPOT, SpotCategory.RESERVED)

        assert spot.category == SpotCategory.RESERVED
        assert spot.hourly_rate == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_change_category_of_occupied_spot(self, allocator: SpotAllocator):
        await allocator.allocate(REGULAR_SPOT, "ABC1234")

        with pytest.raises(SpotUnavailableError):
            await allocator.change_category(REGULAR_SPOT, SpotCategory.COMPACT)


class TestReservationManager:
    """Tests for ReservationManager."""

    @pytest.fixture
    def reservations(self, facility, store) -> ReservationManager:
        return ReservationManager(store)

    @pytest.mark.asyncio
    async def test_claim_is_idempotent(self, reservations: ReservationManager):
        first = await reservations.claim(RESERVED_SPOT, "ABC1234")
        second = await reservations.claim(RESERVED_SPOT, "XYZ9876")

        assert second.id == first.id
        assert second.plate == "ABC1234"
        assert len(await reservations.active()) == 1

    @pytest.mark.asyncio
    async def test_claim_requires_reserved_category(self, reservations: ReservationManager):
        with pytest.raises(NotReservedCategoryError):
            await reservations.claim(REGULAR_SPOT)

    @pytest.mark.asyncio
    async def test_claim_unknown_spot(self, reservations: ReservationManager):
        with pytest.raises(SpotNotFoundError):
            await reservations.claim("F9-R1-S10")

    @pytest.mark.asyncio
    async def test_open_claim_accepts_any_plate(self, reservations: ReservationManager):
        await reservations.claim(RESERVED_SPOT)

        assert await reservations.is_satisfied_by(RESERVED_SPOT, "ABC1234")
        assert await reservations.is_satisfied_by(RESERVED_SPOT, "XYZ9876")

    @pytest.mark.asyncio
    async def test_consume_binds_and_deactivates(self, reservations: ReservationManager):
        await reservations.claim(RESERVED_SPOT)

        consumed = await reservations.consume(RESERVED_SPOT, "ABC1234")

        assert consumed.plate == "ABC1234"
        assert consumed.is_active is False
        assert await reservations.active_for(RESERVED_SPOT) is None

    @pytest.mark.asyncio
    async def test_consume_for_wrong_plate(self, reservations: ReservationManager):
        await reservations.claim(RESERVED_SPOT, "ABC1234")

        with pytest.raises(ReservationConflictError):
            await reservations.consume(RESERVED_SPOT, "XYZ9876")

    @pytest.mark.asyncio
    async def test_consume_without_reservation(self, reservations: ReservationManager):
        with pytest.raises(NoActiveReservationError):
            await reservations.consume(RESERVED_SPOT, "ABC1234")

    @pytest.mark.asyncio
    async def test_assign_open_reservation(self, reservations: ReservationManager):
        reservation = await reservations.claim(RESERVED_SPOT)

        assigned = await reservations.assign(reservation.id, "ABC1234")
        assert assigned.plate == "ABC1234"

        with pytest.raises(ReservationConflictError):
            await reservations.assign(reservation.id, "XYZ9876")

    @pytest.mark.asyncio
    async def test_cancel_then_history(self, reservations: ReservationManager):
        first = await reservations.claim(RESERVED_SPOT)
        await reservations.cancel(first.id)
        second = await reservations.claim(RESERVED_SPOT, "ABC1234")

        history = await reservations.history(RESERVED_SPOT)

        assert {r.id for r in history} == {first.id, second.id}
        with pytest.raises(ReservationConflictError):
            await reservations.cancel(first.id)

    @pytest.mark.asyncio
    async def test_unknown_reservation(self, reservations: ReservationManager):
        with pytest.raises(ReservationNotFoundError):
            await reservations.get(12345)


class TestTicketLedger:
    """Tests for TicketLedger."""

    @pytest.fixture
    def ledger(self, facility, store) -> TicketLedger:
        return TicketLedger(store)

    def test_ticket_id_format(self):
        ticket_id = new_ticket_id("ABC1234")

        assert ticket_id.startswith("T-ABC1234-")
        assert len(ticket_id.rsplit("-", 1)[1]) == 8

    @pytest.mark.asyncio
    async def test_open_locks_current_scheme(self, ledger: TicketLedger, store):
        await store.config.set(FINE_SCHEME_KEY, FineScheme.HOURLY.value)

        ticket = await ledger.open("ABC1234", REGULAR_SPOT, ENTRY)

        assert ticket.fine_scheme == FineScheme.HOURLY
        assert ticket.is_open

    @pytest.mark.asyncio
    async def test_one_open_ticket_per_plate(self, ledger: TicketLedger):
        await ledger.open("ABC1234", REGULAR_SPOT, ENTRY)

        with pytest.raises(OpenTicketExistsError):
            await ledger.open("ABC1234", "F1-R1-S5", ENTRY)

    @pytest.mark.asyncio
    async def test_close_once(self, ledger: TicketLedger):
        ticket = await ledger.open("ABC1234", REGULAR_SPOT, ENTRY)
        exit_time = ENTRY + timedelta(hours=2)

        closed = await ledger.close(ticket.ticket_id, exit_time)
        assert closed.exit_time == exit_time
        assert await ledger.active_ticket("ABC1234") is None

        with pytest.raises(TicketAlreadyClosedError):
            await ledger.close(ticket.ticket_id, exit_time)

    @pytest.mark.asyncio
    async def test_close_before_entry_rejected(self, ledger: TicketLedger):
        ticket = await ledger.open("ABC1234", REGULAR_SPOT, ENTRY)

        with pytest.raises(ValidationError):
            await ledger.close(ticket.ticket_id, ENTRY - timedelta(minutes=1))

    @pytest.mark.asyncio
    async def test_unknown_ticket(self, ledger: TicketLedger):
        with pytest.raises(TicketNotFoundError):
            await ledger.get("T-NOPE0000-00000000")


class TestFineEngine:
    """Tests for FineEngine."""

    @pytest.fixture
    def engine(self, facility, store) -> FineEngine:
        return FineEngine(store)

    @pytest.fixture
    async def ticket(self, facility, store):
        return await TicketLedger(store).open("ABC1234", REGULAR_SPOT, ENTRY)

    @pytest.mark.asyncio
    async def test_no_fine_within_threshold(self, engine: FineEngine, ticket, store):
        spot = await store.spots.get(REGULAR_SPOT)

        assert await engine.detect_and_generate_fines(ticket, spot, 24) == []

    @pytest.mark.asyncio
    async def test_overstay_fine_generated_once(self, engine: FineEngine, ticket, store):
        spot = await store.spots.get(REGULAR_SPOT)

        first = await engine.detect_and_generate_fines(ticket, spot, 30, detected_at=ENTRY)
        second = await engine.detect_and_generate_fines(ticket, spot, 30, detected_at=ENTRY)

        assert len(first) == 1
        assert first[0].kind == FineKind.OVERSTAY
        assert first[0].amount == Decimal("50.00")
        assert second[0].id == first[0].id
        assert len(await engine.unpaid_fines("ABC1234")) == 1

    @pytest.mark.asyncio
    async def test_fine_amount_updated_not_duplicated(self, facility, store):
        engine = FineEngine(store)
        await store.config.set(FINE_SCHEME_KEY, FineScheme.HOURLY.value)
        ticket = await TicketLedger(store).open("ABC1234", REGULAR_SPOT, ENTRY)
        spot = await store.spots.get(REGULAR_SPOT)

        await engine.detect_and_generate_fines(ticket, spot, 30)
        fines = await engine.detect_and_generate_fines(ticket, spot, 40)

        assert [f.amount for f in fines] == [Decimal("320.00")]
        assert await engine.total_unpaid("ABC1234") == Decimal("320.00")

    @pytest.mark.asyncio
    async def test_reserved_misuse(self, engine: FineEngine, store):
        ticket = await TicketLedger(store).open("ABC1234", RESERVED_SPOT, ENTRY)
        spot = await store.spots.get(RESERVED_SPOT)

        fines = await engine.detect_and_generate_fines(ticket, spot, 1)

        assert [f.kind for f in fines] == [FineKind.RESERVED_MISUSE]

    @pytest.mark.asyncio
    async def test_reserved_honored_no_misuse(self, engine: FineEngine, store):
        ticket = await TicketLedger(store).open("ABC1234", RESERVED_SPOT, ENTRY)
        spot = await store.spots.get(RESERVED_SPOT)

        fines = await engine.detect_and_generate_fines(ticket, spot, 1, reservation_honored=True)

        assert fines == []

    @pytest.mark.asyncio
    async def test_mark_paid_mismatch(self, engine: FineEngine, ticket, store):
        spot = await store.spots.get(REGULAR_SPOT)
        [fine] = await engine.detect_and_generate_fines(ticket, spot, 30)
        await engine.mark_paid([fine.id], payment_id=1)

        with pytest.raises(ConsistencyError):
            await engine.mark_paid([fine.id], payment_id=2)

    @pytest.mark.asyncio
    async def test_paid_fine_not_regenerated(self, engine: FineEngine, ticket, store):
        spot = await store.spots.get(REGULAR_SPOT)
        [fine] = await engine.detect_and_generate_fines(ticket, spot, 30)
        await engine.mark_paid([fine.id], payment_id=1)

        assert await engine.detect_and_generate_fines(ticket, spot, 30) == []

    @pytest.mark.asyncio
    async def test_zero_amount_withdraws_unpaid_fine(self, engine: FineEngine, ticket, store):
        spot = await store.spots.get(REGULAR_SPOT)
        [fine] = await engine.detect_and_generate_fines(ticket, spot, 30)

        assert await engine.detect_and_generate_fines(ticket, spot, 2) == []
        assert await store.fines.get(fine.id) is None
        assert await engine.total_unpaid("ABC1234") == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_zero_amount_keeps_paid_fine(self, engine: FineEngine, ticket, store):
        spot = await store.spots.get(REGULAR_SPOT)
        [fine] = await engine.detect_and_generate_fines(ticket, spot, 30)
        await engine.mark_paid([fine.id], payment_id=1)

        await engine.detect_and_generate_fines(ticket, spot, 2)

        assert (await store.fines.get(fine.id)).is_paid


class TestBillingCalculator:
    """Tests for BillingCalculator."""

    @pytest.mark.asyncio
    async def test_bill_for_standard_vehicle(self, facility, store):
        billing = BillingCalculator(FineEngine(store))
        vehicle = await store.vehicles.add(
            Vehicle(plate="ABC1234", vehicle_class=VehicleClass.STANDARD)
        )
        ticket = await TicketLedger(store).open("ABC1234", REGULAR_SPOT, ENTRY)
        spot = await store.spots.get(REGULAR_SPOT)

        bill = await billing.generate_bill(
            ticket, vehicle, spot, ENTRY + timedelta(hours=2, seconds=1)
        )

        assert bill.hours_parked == 3
        assert bill.hourly_rate == Decimal("5.00")
        assert bill.parking_fee == Decimal("15.00")
        assert bill.new_fines == ()
        assert bill.total_due == Decimal("15.00")

    @pytest.mark.asyncio
    async def test_mobility_vehicle_in_accessible_spot_is_free(self, facility, store):
        billing = BillingCalculator(FineEngine(store))
        vehicle = Vehicle(plate="ABC1234", vehicle_class=VehicleClass.MOBILITY_ACCESSIBLE)
        ticket = await TicketLedger(store).open("ABC1234", ACCESSIBLE_SPOT, ENTRY)
        spot = await store.spots.get(ACCESSIBLE_SPOT)

        bill = await billing.generate_bill(ticket, vehicle, spot, ENTRY + timedelta(hours=5))

        assert bill.parking_fee == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_outstanding_excludes_new_fines(self, facility, store):
        engine = FineEngine(store)
        billing = BillingCalculator(engine)
        ledger = TicketLedger(store)
        vehicle = Vehicle(plate="ABC1234", vehicle_class=VehicleClass.STANDARD)

        old = await ledger.open("ABC1234", COMPACT_SPOT, ENTRY - timedelta(days=3))
        old_spot = await store.spots.get(COMPACT_SPOT)
        await engine.detect_and_generate_fines(old, old_spot, 30, detected_at=ENTRY)
        await ledger.close(old.ticket_id, ENTRY)

        ticket = await ledger.open("ABC1234", REGULAR_SPOT, ENTRY)
        spot = await store.spots.get(REGULAR_SPOT)
        bill = await billing.generate_bill(ticket, vehicle, spot, ENTRY + timedelta(hours=25))

        assert [f.ticket_id for f in bill.new_fines] == [ticket.ticket_id]
        assert [f.ticket_id for f in bill.outstanding_fines] == [old.ticket_id]
        assert [f.ticket_id for f in bill.payable_fines] == [old.ticket_id, ticket.ticket_id]
        assert bill.total_due == Decimal("125.00") + Decimal("100.00")

    @pytest.mark.asyncio
    async def test_exit_before_entry(self, facility, store):
        billing = BillingCalculator(FineEngine(store))
        vehicle = Vehicle(plate="ABC1234", vehicle_class=VehicleClass.STANDARD)
        ticket = await TicketLedger(store).open("ABC1234", REGULAR_SPOT, ENTRY)
        spot = await store.spots.get(REGULAR_SPOT)

        with pytest.raises(ValidationError):
            await billing.generate_bill(ticket, vehicle, spot, ENTRY - timedelta(seconds=1))
