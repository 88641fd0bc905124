"""Database infrastructure package."""

from parkflow.infrastructure.db.models import (
    Base,
    FineDB,
    ParkingSpotDB,
    PaymentDB,
    ReservationDB,
    SystemConfigDB,
    TicketDB,
    VehicleDB,
)
from parkflow.infrastructure.db.repository import (
    SqlConfigRepository,
    SqlFineRepository,
    SqlPaymentRepository,
    SqlReservationRepository,
    SqlSpotRepository,
    SqlStore,
    SqlTicketRepository,
    SqlVehicleRepository,
)
from parkflow.infrastructure.db.session import (
    close_db,
    get_store,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "ParkingSpotDB",
    "VehicleDB",
    "TicketDB",
    "ReservationDB",
    "FineDB",
    "PaymentDB",
    "SystemConfigDB",
    # Repositories
    "SqlSpotRepository",
    "SqlVehicleRepository",
    "SqlTicketRepository",
    "SqlReservationRepository",
    "SqlFineRepository",
    "SqlPaymentRepository",
    "SqlConfigRepository",
    "SqlStore",
    # Session
    "get_store",
    "init_db",
    "close_db",
]
