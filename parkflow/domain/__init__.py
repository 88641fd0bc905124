"""Domain layer package - business rules and core models."""

from parkflow.domain.errors import (
    ConflictError,
    ConsistencyError,
    LockTimeoutError,
    NotFoundError,
    ParkingError,
    ValidationError,
)
from parkflow.domain.fines import FineSchedule, calculate_fine
from parkflow.domain.models import (
    Bill,
    Event,
    EventKind,
    ExitReceipt,
    Fine,
    FineKind,
    FineScheme,
    ParkingSpot,
    Payment,
    PaymentMethod,
    Reservation,
    Settlement,
    SpotCategory,
    SpotStatus,
    Ticket,
    Vehicle,
    VehicleClass,
)
from parkflow.domain.services import DurationCalculator, PlateValidator, RateTable
from parkflow.domain.settlement import PaymentSettlement

__all__ = [
    # Models
    "Bill",
    "Event",
    "EventKind",
    "ExitReceipt",
    "Fine",
    "FineKind",
    "FineScheme",
    "ParkingSpot",
    "Payment",
    "PaymentMethod",
    "Reservation",
    "Settlement",
    "SpotCategory",
    "SpotStatus",
    "Ticket",
    "Vehicle",
    "VehicleClass",
    # Errors
    "ConflictError",
    "ConsistencyError",
    "LockTimeoutError",
    "NotFoundError",
    "ParkingError",
    "ValidationError",
    # Services
    "DurationCalculator",
    "FineSchedule",
    "PaymentSettlement",
    "PlateValidator",
    "RateTable",
    "calculate_fine",
]
