"""Application layer package - use cases and services."""

from parkflow.application.admin_service import FacilityAdminService
from parkflow.application.billing import BillingCalculator
from parkflow.application.events import EventBus, get_event_bus, log_event
from parkflow.application.fine_engine import FineEngine, schedule_from_settings
from parkflow.application.locks import KeyedLock, LockRegistry, get_lock_registry
from parkflow.application.parking_session import ParkingSessionService
from parkflow.application.reservations import ReservationManager
from parkflow.application.spot_allocator import SpotAllocator
from parkflow.application.ticket_ledger import TicketLedger

__all__ = [
    "BillingCalculator",
    "EventBus",
    "FacilityAdminService",
    "FineEngine",
    "KeyedLock",
    "LockRegistry",
    "ParkingSessionService",
    "ReservationManager",
    "SpotAllocator",
    "TicketLedger",
    "get_event_bus",
    "get_lock_registry",
    "log_event",
    "schedule_from_settings",
]
