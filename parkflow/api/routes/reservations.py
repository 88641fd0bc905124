"""
Reservation API routes.

Reserved spots can be claimed openly or for a specific plate. A second
claim while one is active returns the existing reservation.
"""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status
from pydantic import BaseModel, Field

from parkflow.api.deps import AdminSvc
from parkflow.api.schemas import ReservationResponse

router = APIRouter(prefix="/reservations", tags=["reservations"])


class ReservationRequest(BaseModel):
    """Request body for reserving a spot."""

    spot_id: str = Field(description="Reserved-category spot", examples=["F1-R1-S10"])
    plate: str | None = Field(default=None, description="Claimant plate; omit for an open claim")


class AssignRequest(BaseModel):
    """Request body for binding an open reservation to a plate."""

    plate: str = Field(description="Plate number")


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]
    count: int


@router.post(
    "",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve a spot",
)
async def create_reservation(
    request: ReservationRequest,
    admin: AdminSvc,
) -> ReservationResponse:
    reservation = await admin.reserve_spot(request.spot_id, request.plate)
    return ReservationResponse.from_domain(reservation)


@router.get(
    "",
    response_model=ReservationListResponse,
    summary="List reservations",
    description="Active reservations, or the full history of one spot.",
)
async def list_reservations(
    admin: AdminSvc,
    spot_id: Annotated[str | None, Query(description="Show this spot's history")] = None,
) -> ReservationListResponse:
    if spot_id is not None:
        reservations = await admin.reservation_history(spot_id)
    else:
        reservations = await admin.active_reservations()
    return ReservationListResponse(
        reservations=[ReservationResponse.from_domain(r) for r in reservations],
        count=len(reservations),
    )


@router.post(
    "/{reservation_id}/assign",
    response_model=ReservationResponse,
    summary="Assign reservation to a plate",
)
async def assign_reservation(
    reservation_id: Annotated[int, Path(description="Reservation ID")],
    request: AssignRequest,
    admin: AdminSvc,
) -> ReservationResponse:
    reservation = await admin.assign_reservation(reservation_id, request.plate)
    return ReservationResponse.from_domain(reservation)


@router.delete(
    "/{reservation_id}",
    response_model=ReservationResponse,
    summary="Cancel reservation",
)
async def cancel_reservation(
    reservation_id: Annotated[int, Path(description="Reservation ID")],
    admin: AdminSvc,
) -> ReservationResponse:
    reservation = await admin.cancel_reservation(reservation_id)
    return ReservationResponse.from_domain(reservation)
