"""
Vehicle entry API routes.
"""

from datetime import datetime

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from parkflow.api.deps import SessionSvc
from parkflow.api.schemas import TicketResponse
from parkflow.domain.models import VehicleClass

router = APIRouter(prefix="/entries", tags=["entries"])


class EntryRequest(BaseModel):
    """Request body for parking a vehicle."""

    plate: str = Field(description="Plate number, 3 letters + 4 digits", examples=["ABC1234"])
    vehicle_class: VehicleClass = Field(description="Class of the arriving vehicle")
    spot_id: str = Field(description="Chosen spot", examples=["F1-R1-S4"])
    entry_time: datetime | None = Field(
        default=None,
        description="Entry time (UTC); defaults to now",
    )


@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Park a vehicle",
    description="Allocate the chosen spot and open a ticket for the plate.",
)
async def enter_vehicle(
    request: EntryRequest,
    service: SessionSvc,
) -> TicketResponse:
    """
    Park a vehicle.

    Returns 409 if the spot is taken, the plate already has an open
    ticket or the reserved spot is held for another plate.
    """
    ticket = await service.enter(
        plate=request.plate,
        vehicle_class=request.vehicle_class,
        spot_id=request.spot_id,
        now=request.entry_time,
    )
    return TicketResponse.from_domain(ticket)
