"""
Domain models for the parking session and settlement engine.

These are pure domain objects with no infrastructure dependencies.
Money is always Decimal; times are naive UTC datetimes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0.00")


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC. Naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class VehicleClass(str, Enum):
    """Closed set of vehicle classes recognised by the facility."""

    TWO_WHEEL = "two_wheel"
    STANDARD = "standard"
    LARGE = "large"
    MOBILITY_ACCESSIBLE = "mobility_accessible"


class SpotCategory(str, Enum):
    """
    Category of a parking spot.

    Each category carries the base hourly rate a spot gets when it is
    created or re-categorised.
    """

    COMPACT = "compact"
    REGULAR = "regular"
    ACCESSIBLE = "accessible"
    RESERVED = "reserved"

    @property
    def base_rate(self) -> Decimal:
        """Base hourly rate for spots of this category."""
        return BASE_HOURLY_RATES[self]


BASE_HOURLY_RATES: dict[SpotCategory, Decimal] = {
    SpotCategory.COMPACT: Decimal("2.00"),
    SpotCategory.REGULAR: Decimal("5.00"),
    SpotCategory.ACCESSIBLE: Decimal("2.00"),
    SpotCategory.RESERVED: Decimal("10.00"),
}


class SpotStatus(str, Enum):
    """Occupancy status of a spot."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"


class FineScheme(str, Enum):
    """Fine policy, locked into each ticket when it is opened."""

    FIXED = "fixed"
    PROGRESSIVE = "progressive"
    HOURLY = "hourly"


class FineKind(str, Enum):
    """Kind of violation a fine is issued for."""

    OVERSTAY = "overstay"
    RESERVED_MISUSE = "reserved_misuse"


class PaymentMethod(str, Enum):
    """How the tendered amount was paid at the exit."""

    CASH = "cash"
    CARD = "card"


class EventKind(str, Enum):
    """Domain events published on the event bus."""

    VEHICLE_ENTERED = "vehicle_entered"
    VEHICLE_EXITED = "vehicle_exited"
    FINE_GENERATED = "fine_generated"
    FINE_PAID = "fine_paid"
    PAYMENT_PROCESSED = "payment_processed"
    SPOT_STATUS_CHANGED = "spot_status_changed"
    SPOT_TYPE_CHANGED = "spot_type_changed"


@dataclass
class Vehicle:
    """
    A vehicle known to the facility.

    Attributes:
        plate: Normalized plate number (unique key).
        vehicle_class: Class used for spot compatibility and rates.
        balance: Carried balance. Settlement stores the unconsumed tender
            here, so a positive value is money held for the vehicle and a
            negative value is an unpaid parking shortfall.
        registered_at: When the vehicle first entered.
    """

    plate: str
    vehicle_class: VehicleClass
    balance: Decimal = ZERO
    registered_at: datetime = field(default_factory=utcnow)


@dataclass
class ParkingSpot:
    """
    A single parking spot.

    Attributes:
        spot_id: Identifier in the form F{floor}-R{row}-S{index}.
        floor: Floor number (1-based).
        row: Row number on the floor (1-based).
        index: Position within the row (1-based).
        category: Spot category.
        hourly_rate: Current hourly rate.
        status: Available or occupied.
        occupant_plate: Plate of the parked vehicle, None when available.
    """

    spot_id: str
    floor: int
    row: int
    index: int
    category: SpotCategory
    hourly_rate: Decimal
    status: SpotStatus = SpotStatus.AVAILABLE
    occupant_plate: str | None = None

    @staticmethod
    def make_id(floor: int, row: int, index: int) -> str:
        """Build the canonical spot identifier."""
        return f"F{floor}-R{row}-S{index}"

    @classmethod
    def create(cls, floor: int, row: int, index: int, category: SpotCategory) -> "ParkingSpot":
        """Create an available spot at its category's base rate."""
        return cls(
            spot_id=cls.make_id(floor, row, index),
            floor=floor,
            row=row,
            index=index,
            category=category,
            hourly_rate=category.base_rate,
        )

    @property
    def is_available(self) -> bool:
        return self.status == SpotStatus.AVAILABLE

    @property
    def position(self) -> tuple[int, int, int]:
        """Sort key: floor, row, index."""
        return (self.floor, self.row, self.index)

    def is_consistent(self) -> bool:
        """Occupant is set if and only if the spot is occupied."""
        return (self.status == SpotStatus.OCCUPIED) == (self.occupant_plate is not None)


@dataclass
class Reservation:
    """
    A claim on a reserved-category spot.

    Attributes:
        spot_id: The reserved spot.
        plate: Claimant plate, None for an open claim.
        is_active: False once consumed or cancelled.
        reserved_at: When the reservation was made.
        id: Set by the store.
    """

    spot_id: str
    plate: str | None = None
    is_active: bool = True
    reserved_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def accepts(self, plate: str) -> bool:
        """True if the reservation is active and open or held for `plate`."""
        return self.is_active and (self.plate is None or self.plate == plate)


@dataclass(frozen=True)
class Ticket:
    """
    Record of one parking session.

    Tickets are immutable. Closing a ticket produces a new value with the
    exit time set; the fine scheme captured at entry never changes.

    Attributes:
        ticket_id: Unique ticket identifier.
        plate: Plate of the parked vehicle.
        spot_id: Allocated spot.
        entry_time: When the session started.
        fine_scheme: Facility scheme at the moment of entry.
        exit_time: None while the ticket is open.
        reservation_id: Reservation consumed by this entry, if any.
    """

    ticket_id: str
    plate: str
    spot_id: str
    entry_time: datetime
    fine_scheme: FineScheme
    exit_time: datetime | None = None
    reservation_id: int | None = None

    @property
    def is_open(self) -> bool:
        return self.exit_time is None


@dataclass
class Fine:
    """
    A fine issued against a ticket.

    At most one fine exists per (ticket_id, kind); recomputing updates it.
    """

    plate: str
    ticket_id: str
    kind: FineKind
    amount: Decimal
    scheme: FineScheme
    is_paid: bool = False
    created_at: datetime = field(default_factory=utcnow)
    payment_id: int | None = None
    id: int | None = None

    @property
    def age_key(self) -> tuple[datetime, int]:
        """Oldest-first ordering key."""
        return (self.created_at, self.id or 0)


@dataclass(frozen=True)
class Payment:
    """
    Payment recorded once per exit.

    Attributes:
        ticket_id: Ticket settled by this payment.
        parking_fee: Portion applied to parking (including a cleared shortfall).
        fine_amount: Portion applied to fines.
        method: Cash or card.
        paid_at: When the payment was taken.
        paid_fine_ids: Fines fully paid by this payment.
        id: Set by the store.
    """

    ticket_id: str
    parking_fee: Decimal
    fine_amount: Decimal
    method: PaymentMethod
    paid_at: datetime = field(default_factory=utcnow)
    paid_fine_ids: tuple[int, ...] = ()
    id: int | None = None

    @property
    def total(self) -> Decimal:
        return self.parking_fee + self.fine_amount


@dataclass(frozen=True)
class Settlement:
    """
    Outcome of allocating a tendered amount.

    Attributes:
        balance_cleared: Part of the tender that cleared a carried shortfall.
        parking_fee_paid: Amount booked as parking revenue (includes
            balance_cleared).
        paid_fines: Fines paid in full, oldest first.
        fine_amount_paid: Sum of paid_fines.
        new_balance: Unconsumed remainder carried to the next visit.
    """

    balance_cleared: Decimal
    parking_fee_paid: Decimal
    paid_fines: tuple[Fine, ...]
    fine_amount_paid: Decimal
    new_balance: Decimal


@dataclass(frozen=True)
class Bill:
    """
    Everything owed when a vehicle leaves.

    Attributes:
        ticket: The open ticket being billed.
        vehicle: The billed vehicle.
        spot: The occupied spot.
        exit_time: Exit time used for the duration.
        hours_parked: Ceiling-rounded duration.
        hourly_rate: Rate for this vehicle class in this spot.
        parking_fee: hours_parked x hourly_rate.
        new_fines: Fines generated for this ticket.
        outstanding_fines: Earlier unpaid fines for the plate, oldest first.
    """

    ticket: Ticket
    vehicle: Vehicle
    spot: ParkingSpot
    exit_time: datetime
    hours_parked: int
    hourly_rate: Decimal
    parking_fee: Decimal
    new_fines: tuple[Fine, ...]
    outstanding_fines: tuple[Fine, ...]

    @property
    def entry_time(self) -> datetime:
        return self.ticket.entry_time

    @property
    def fine_scheme(self) -> FineScheme:
        return self.ticket.fine_scheme

    @property
    def carried_balance(self) -> Decimal:
        return self.vehicle.balance

    @property
    def new_fine_amount(self) -> Decimal:
        return sum((f.amount for f in self.new_fines), ZERO)

    @property
    def outstanding_fine_amount(self) -> Decimal:
        return sum((f.amount for f in self.outstanding_fines), ZERO)

    @property
    def total_due(self) -> Decimal:
        return self.parking_fee + self.new_fine_amount + self.outstanding_fine_amount

    @property
    def payable_fines(self) -> tuple[Fine, ...]:
        """Every unpaid fine on the bill, oldest first."""
        return tuple(sorted(self.outstanding_fines + self.new_fines, key=lambda f: f.age_key))


@dataclass(frozen=True)
class ExitReceipt:
    """Result of a completed exit."""

    bill: Bill
    settlement: Settlement
    payment: Payment
    ticket: Ticket


@dataclass(frozen=True)
class Event:
    """A published domain event."""

    kind: EventKind
    payload: Any
    occurred_at: datetime = field(default_factory=utcnow)
