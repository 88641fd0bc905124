"""
Storage-agnostic unit of work.

Services talk to a Store and its per-entity repositories only. Two
implementations exist: SqlStore (async SQLAlchemy) and InMemoryStore.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

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

FINE_SCHEME_KEY = "fine_scheme"


@dataclass(frozen=True)
class PaymentTotals:
    """Aggregate over all recorded payments."""

    parking_total: Decimal = ZERO
    fine_total: Decimal = ZERO
    count: int = 0

    @property
    def total(self) -> Decimal:
        return self.parking_total + self.fine_total


class SpotRepository(ABC):
    @abstractmethod
    async def get(self, spot_id: str) -> ParkingSpot | None: ...

    @abstractmethod
    async def find_many(
        self,
        floor: int | None = None,
        categories: Iterable[SpotCategory] | None = None,
        status: SpotStatus | None = None,
    ) -> list[ParkingSpot]:
        """Spots matching every given filter, ordered by floor, row, index."""

    @abstractmethod
    async def add(self, spot: ParkingSpot) -> ParkingSpot: ...

    @abstractmethod
    async def update_category(
        self, spot_id: str, category: SpotCategory, hourly_rate: Decimal
    ) -> bool:
        """Change category and rate of an available spot. False if not available."""

    @abstractmethod
    async def mark_occupied(self, spot_id: str, plate: str) -> bool:
        """Flip an available spot to occupied. False if it was not available."""

    @abstractmethod
    async def mark_available(self, spot_id: str) -> bool:
        """Flip an occupied spot to available. False if it was not occupied."""

    @abstractmethod
    async def count(self) -> int: ...


class VehicleRepository(ABC):
    @abstractmethod
    async def get(self, plate: str) -> Vehicle | None: ...

    @abstractmethod
    async def add(self, vehicle: Vehicle) -> Vehicle: ...

    @abstractmethod
    async def update_balance(self, plate: str, balance: Decimal) -> bool: ...


class TicketRepository(ABC):
    @abstractmethod
    async def get(self, ticket_id: str) -> Ticket | None: ...

    @abstractmethod
    async def open_for_plate(self, plate: str) -> Ticket | None: ...

    @abstractmethod
    async def list_open(self) -> list[Ticket]:
        """Open tickets, oldest entry first."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket: ...

    @abstractmethod
    async def close(self, ticket_id: str, exit_time: datetime) -> bool:
        """Set the exit time of an open ticket. False if it was already closed."""

    @abstractmethod
    async def count_open(self) -> int: ...


class ReservationRepository(ABC):
    @abstractmethod
    async def get(self, reservation_id: int) -> Reservation | None: ...

    @abstractmethod
    async def active_for_spot(self, spot_id: str) -> Reservation | None: ...

    @abstractmethod
    async def list_active(self) -> list[Reservation]: ...

    @abstractmethod
    async def history(self, spot_id: str) -> list[Reservation]:
        """Every reservation ever made for a spot, newest first."""

    @abstractmethod
    async def add(self, reservation: Reservation) -> Reservation: ...

    @abstractmethod
    async def update(self, reservation: Reservation) -> None: ...


class FineRepository(ABC):
    @abstractmethod
    async def get(self, fine_id: int) -> Fine | None: ...

    @abstractmethod
    async def for_ticket(self, ticket_id: str, kind: FineKind) -> Fine | None: ...

    @abstractmethod
    async def list_unpaid(self, plate: str | None = None) -> list[Fine]:
        """Unpaid fines, oldest first, optionally for one plate."""

    @abstractmethod
    async def add(self, fine: Fine) -> Fine: ...

    @abstractmethod
    async def update(self, fine: Fine) -> None: ...

    @abstractmethod
    async def remove_unpaid(self, fine_id: int) -> bool:
        """Delete a fine that has not been paid. Returns False if none was removed."""

    @abstractmethod
    async def mark_paid(self, fine_ids: Sequence[int], payment_id: int) -> int:
        """Mark unpaid fines as paid by a payment. Returns rows changed."""

    @abstractmethod
    async def total_unpaid(self, plate: str | None = None) -> Decimal: ...


class PaymentRepository(ABC):
    @abstractmethod
    async def get(self, payment_id: int) -> Payment | None: ...

    @abstractmethod
    async def for_ticket(self, ticket_id: str) -> list[Payment]: ...

    @abstractmethod
    async def add(self, payment: Payment) -> Payment: ...

    @abstractmethod
    async def totals(self) -> PaymentTotals: ...


class ConfigRepository(ABC):
    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...


class Store(ABC):
    """
    One unit of work over the facility's state.

    Writes made through the repositories become durable on commit() and
    are discarded by rollback().
    """

    spots: SpotRepository
    vehicles: VehicleRepository
    tickets: TicketRepository
    reservations: ReservationRepository
    fines: FineRepository
    payments: PaymentRepository
    config: ConfigRepository

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...
