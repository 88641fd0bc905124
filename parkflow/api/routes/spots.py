"""
Parking spot API routes.
"""

from typing import Annotated

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from parkflow.api.deps import AdminSvc
from parkflow.api.schemas import SpotResponse
from parkflow.domain.models import SpotCategory, VehicleClass

router = APIRouter(prefix="/spots", tags=["spots"])


class SpotListResponse(BaseModel):
    """Response model for spot list."""

    spots: list[SpotResponse] = Field(description="Spots ordered by floor, row, index")
    count: int = Field(description="Number of spots returned")


class CategoryChangeRequest(BaseModel):
    """Request body for re-categorising a spot."""

    category: SpotCategory


@router.get(
    "",
    response_model=SpotListResponse,
    summary="List spots",
    description="List all spots, or the available candidates for a vehicle class.",
)
async def list_spots(
    admin: AdminSvc,
    vehicle_class: Annotated[
        VehicleClass | None,
        Query(description="Only available spots this class may use"),
    ] = None,
    floor: Annotated[int | None, Query(ge=1)] = None,
) -> SpotListResponse:
    spots = await admin.list_spots(vehicle_class=vehicle_class, floor=floor)
    return SpotListResponse(
        spots=[SpotResponse.from_domain(s) for s in spots],
        count=len(spots),
    )


@router.get(
    "/{spot_id}",
    response_model=SpotResponse,
    summary="Get spot details",
)
async def get_spot(
    spot_id: Annotated[str, Path(description="Spot identifier")],
    admin: AdminSvc,
) -> SpotResponse:
    return SpotResponse.from_domain(await admin.get_spot(spot_id))


@router.put(
    "/{spot_id}/category",
    response_model=SpotResponse,
    summary="Change spot category",
    description="Re-categorise an available spot; its hourly rate resets to the category's base rate.",
)
async def change_spot_category(
    spot_id: Annotated[str, Path(description="Spot identifier")],
    request: CategoryChangeRequest,
    admin: AdminSvc,
) -> SpotResponse:
    spot = await admin.change_spot_category(spot_id, request.category)
    return SpotResponse.from_domain(spot)
