"""
FastAPI dependencies for dependency injection.

Provides the per-request store and the service instances built on it
for route handlers.
"""

from typing import Annotated

from fastapi import Depends

from parkflow.application.admin_service import FacilityAdminService
from parkflow.application.events import EventBus, get_event_bus
from parkflow.application.locks import LockRegistry, get_lock_registry
from parkflow.application.parking_session import ParkingSessionService
from parkflow.core.config import Settings, get_settings
from parkflow.infrastructure.db.session import get_store
from parkflow.infrastructure.store import Store

# Type aliases for cleaner route signatures
StoreDep = Annotated[Store, Depends(get_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
LocksDep = Annotated[LockRegistry, Depends(get_lock_registry)]
EventBusDep = Annotated[EventBus, Depends(get_event_bus)]


async def get_session_service(
    store: StoreDep,
    locks: LocksDep,
    event_bus: EventBusDep,
    settings: SettingsDep,
) -> ParkingSessionService:
    """
    Dependency to get the entry/exit workflow service.

    Args:
        store: Per-request unit of work.
        locks: Process-wide lock registry.
        event_bus: Process-wide event bus.
        settings: Application settings.

    Returns:
        ParkingSessionService: Configured service instance.
    """
    return ParkingSessionService(store, locks=locks, event_bus=event_bus, settings=settings)


async def get_admin_service(
    store: StoreDep,
    locks: LocksDep,
    event_bus: EventBusDep,
    settings: SettingsDep,
) -> FacilityAdminService:
    """
    Dependency to get the facility admin service.

    Returns:
        FacilityAdminService: Configured service instance.
    """
    return FacilityAdminService(store, locks=locks, event_bus=event_bus, settings=settings)


# Type aliases for service dependencies
SessionSvc = Annotated[ParkingSessionService, Depends(get_session_service)]
AdminSvc = Annotated[FacilityAdminService, Depends(get_admin_service)]
