"""
In-memory store implementation.

MemoryDatabase holds the shared state; each InMemoryStore is one unit of
work over it. Writes apply to the shared state immediately and are
journaled, so rollback() restores exactly the rows this unit of work
touched. Readers get copies, never the stored objects.
"""

import copy
import itertools
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from parkflow.domain.models import (
    ZERO,
    Fine,
    FineKind,
    ParkingSpot,
    Payment,
    Reservation,
    SpotCategory,
    SpotStatus,
    Ticket,
    Vehicle,
)
from parkflow.infrastructure.store import (
    ConfigRepository,
    FineRepository,
    PaymentRepository,
    PaymentTotals,
    ReservationRepository,
    SpotRepository,
    Store,
    TicketRepository,
    VehicleRepository,
)

_MISSING = object()


@dataclass
class MemoryDatabase:
    """Shared tables for InMemoryStore units of work."""

    spots: dict[str, ParkingSpot] = field(default_factory=dict)
    vehicles: dict[str, Vehicle] = field(default_factory=dict)
    tickets: dict[str, Ticket] = field(default_factory=dict)
    reservations: dict[int, Reservation] = field(default_factory=dict)
    fines: dict[int, Fine] = field(default_factory=dict)
    payments: dict[int, Payment] = field(default_factory=dict)
    config: dict[str, str] = field(default_factory=dict)
    _ids: Any = field(default_factory=lambda: itertools.count(1))

    def next_id(self) -> int:
        return next(self._ids)


class _Journal:
    """Records the first prior value of every row written in a unit of work."""

    def __init__(self, db: MemoryDatabase):
        self._db = db
        self._before: dict[tuple[str, Any], Any] = {}

    def write(self, table: str, key: Any, value: Any) -> None:
        rows = getattr(self._db, table)
        self._before.setdefault((table, key), rows.get(key, _MISSING))
        rows[key] = value

    def delete(self, table: str, key: Any) -> None:
        rows = getattr(self._db, table)
        self._before.setdefault((table, key), rows.get(key, _MISSING))
        rows.pop(key, None)

    def clear(self) -> None:
        self._before.clear()

    def undo(self) -> None:
        for (table, key), value in reversed(list(self._before.items())):
            rows = getattr(self._db, table)
            if value is _MISSING:
                rows.pop(key, None)
            else:
                rows[key] = value
        self._before.clear()


class _MemoryRepository:
    def __init__(self, db: MemoryDatabase, journal: _Journal):
        self._db = db
        self._journal = journal


class InMemorySpotRepository(_MemoryRepository, SpotRepository):
    async def get(self, spot_id: str) -> ParkingSpot | None:
        spot = self._db.spots.get(spot_id)
        return copy.copy(spot) if spot else None

    async def find_many(
        self,
        floor: int | None = None,
        categories: Iterable[SpotCategory] | None = None,
        status: SpotStatus | None = None,
    ) -> list[ParkingSpot]:
        wanted = set(categories) if categories is not None else None
        spots = [
            copy.copy(spot)
            for spot in self._db.spots.values()
            if (floor is None or spot.floor == floor)
            and (wanted is None or spot.category in wanted)
            and (status is None or spot.status == status)
        ]
        return sorted(spots, key=lambda s: s.position)

    async def add(self, spot: ParkingSpot) -> ParkingSpot:
        self._journal.write("spots", spot.spot_id, copy.copy(spot))
        return spot

    async def update_category(
        self, spot_id: str, category: SpotCategory, hourly_rate: Decimal
    ) -> bool:
        spot = self._db.spots.get(spot_id)
        if spot is None or not spot.is_available:
            return False
        self._journal.write(
            "spots", spot_id, replace(spot, category=category, hourly_rate=hourly_rate)
        )
        return True

    async def mark_occupied(self, spot_id: str, plate: str) -> bool:
        spot = self._db.spots.get(spot_id)
        if spot is None or spot.status != SpotStatus.AVAILABLE:
            return False
        self._journal.write(
            "spots", spot_id, replace(spot, status=SpotStatus.OCCUPIED, occupant_plate=plate)
        )
        return True

    async def mark_available(self, spot_id: str) -> bool:
        spot = self._db.spots.get(spot_id)
        if spot is None or spot.status != SpotStatus.OCCUPIED:
            return False
        self._journal.write(
            "spots", spot_id, replace(spot, status=SpotStatus.AVAILABLE, occupant_plate=None)
        )
        return True

    async def count(self) -> int:
        return len(self._db.spots)


class InMemoryVehicleRepository(_MemoryRepository, VehicleRepository):
    async def get(self, plate: str) -> Vehicle | None:
        vehicle = self._db.vehicles.get(plate)
        return copy.copy(vehicle) if vehicle else None

    async def add(self, vehicle: Vehicle) -> Vehicle:
        self._journal.write("vehicles", vehicle.plate, copy.copy(vehicle))
        return vehicle

    async def update_balance(self, plate: str, balance: Decimal) -> bool:
        vehicle = self._db.vehicles.get(plate)
        if vehicle is None:
            return False
        self._journal.write("vehicles", plate, replace(vehicle, balance=balance))
        return True


class InMemoryTicketRepository(_MemoryRepository, TicketRepository):
    async def get(self, ticket_id: str) -> Ticket | None:
        return self._db.tickets.get(ticket_id)

    async def open_for_plate(self, plate: str) -> Ticket | None:
        for ticket in self._db.tickets.values():
            if ticket.plate == plate and ticket.is_open:
                return ticket
        return None

    async def list_open(self) -> list[Ticket]:
        tickets = [t for t in self._db.tickets.values() if t.is_open]
        return sorted(tickets, key=lambda t: t.entry_time)

    async def add(self, ticket: Ticket) -> Ticket:
        self._journal.write("tickets", ticket.ticket_id, ticket)
        return ticket

    async def close(self, ticket_id: str, exit_time: datetime) -> bool:
        ticket = self._db.tickets.get(ticket_id)
        if ticket is None or not ticket.is_open:
            return False
        self._journal.write("tickets", ticket_id, replace(ticket, exit_time=exit_time))
        return True

    async def count_open(self) -> int:
        return sum(1 for t in self._db.tickets.values() if t.is_open)


class InMemoryReservationRepository(_MemoryRepository, ReservationRepository):
    async def get(self, reservation_id: int) -> Reservation | None:
        reservation = self._db.reservations.get(reservation_id)
        return copy.copy(reservation) if reservation else None

    async def active_for_spot(self, spot_id: str) -> Reservation | None:
        for reservation in self._db.reservations.values():
            if reservation.spot_id == spot_id and reservation.is_active:
                return copy.copy(reservation)
        return None

    async def list_active(self) -> list[Reservation]:
        active = [copy.copy(r) for r in self._db.reservations.values() if r.is_active]
        return sorted(active, key=lambda r: (r.reserved_at, r.id))

    async def history(self, spot_id: str) -> list[Reservation]:
        rows = [copy.copy(r) for r in self._db.reservations.values() if r.spot_id == spot_id]
        return sorted(rows, key=lambda r: (r.reserved_at, r.id), reverse=True)

    async def add(self, reservation: Reservation) -> Reservation:
        reservation.id = self._db.next_id()
        self._journal.write("reservations", reservation.id, copy.copy(reservation))
        return reservation

    async def update(self, reservation: Reservation) -> None:
        self._journal.write("reservations", reservation.id, copy.copy(reservation))


class InMemoryFineRepository(_MemoryRepository, FineRepository):
    async def get(self, fine_id: int) -> Fine | None:
        fine = self._db.fines.get(fine_id)
        return copy.copy(fine) if fine else None

    async def for_ticket(self, ticket_id: str, kind: FineKind) -> Fine | None:
        for fine in self._db.fines.values():
            if fine.ticket_id == ticket_id and fine.kind == kind:
                return copy.copy(fine)
        return None

    async def list_unpaid(self, plate: str | None = None) -> list[Fine]:
        unpaid = [
            copy.copy(f)
            for f in self._db.fines.values()
            if not f.is_paid and (plate is None or f.plate == plate)
        ]
        return sorted(unpaid, key=lambda f: f.age_key)

    async def add(self, fine: Fine) -> Fine:
        fine.id = self._db.next_id()
        self._journal.write("fines", fine.id, copy.copy(fine))
        return fine

    async def update(self, fine: Fine) -> None:
        self._journal.write("fines", fine.id, copy.copy(fine))

    async def remove_unpaid(self, fine_id: int) -> bool:
        fine = self._db.fines.get(fine_id)
        if fine is None or fine.is_paid:
            return False
        self._journal.delete("fines", fine_id)
        return True

    async def mark_paid(self, fine_ids: Sequence[int], payment_id: int) -> int:
        changed = 0
        for fine_id in fine_ids:
            fine = self._db.fines.get(fine_id)
            if fine is None or fine.is_paid:
                continue
            self._journal.write("fines", fine_id, replace(fine, is_paid=True, payment_id=payment_id))
            changed += 1
        return changed

    async def total_unpaid(self, plate: str | None = None) -> Decimal:
        return sum(
            (f.amount for f in self._db.fines.values()
             if not f.is_paid and (plate is None or f.plate == plate)),
            ZERO,
        )


class InMemoryPaymentRepository(_MemoryRepository, PaymentRepository):
    async def get(self, payment_id: int) -> Payment | None:
        return self._db.payments.get(payment_id)

    async def for_ticket(self, ticket_id: str) -> list[Payment]:
        return [p for p in self._db.payments.values() if p.ticket_id == ticket_id]

    async def add(self, payment: Payment) -> Payment:
        stored = replace(payment, id=self._db.next_id())
        self._journal.write("payments", stored.id, stored)
        return stored

    async def totals(self) -> PaymentTotals:
        payments = list(self._db.payments.values())
        return PaymentTotals(
            parking_total=sum((p.parking_fee for p in payments), ZERO),
            fine_total=sum((p.fine_amount for p in payments), ZERO),
            count=len(payments),
        )


class InMemoryConfigRepository(_MemoryRepository, ConfigRepository):
    async def get(self, key: str) -> str | None:
        return self._db.config.get(key)

    async def set(self, key: str, value: str) -> None:
        self._journal.write("config", key, value)


class InMemoryStore(Store):
    """
    Unit of work over a MemoryDatabase.

    Example:
        db = MemoryDatabase()
        store = InMemoryStore(db)
        await store.spots.add(ParkingSpot.create(1, 1, 1, SpotCategory.COMPACT))
        await store.commit()
    """

    def __init__(self, db: MemoryDatabase | None = None):
        self.db = db or MemoryDatabase()
        self._journal = _Journal(self.db)
        self.spots = InMemorySpotRepository(self.db, self._journal)
        self.vehicles = InMemoryVehicleRepository(self.db, self._journal)
        self.tickets = InMemoryTicketRepository(self.db, self._journal)
        self.reservations = InMemoryReservationRepository(self.db, self._journal)
        self.fines = InMemoryFineRepository(self.db, self._journal)
        self.payments = InMemoryPaymentRepository(self.db, self._journal)
        self.config = InMemoryConfigRepository(self.db, self._journal)

    async def commit(self) -> None:
        self._journal.clear()

    async def rollback(self) -> None:
        self._journal.undo()
