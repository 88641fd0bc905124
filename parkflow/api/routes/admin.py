"""
Facility administration API routes.

Fine-scheme configuration and reports for the operator dashboard.
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from parkflow.api.deps import AdminSvc
from parkflow.api.schemas import FineResponse, TicketResponse
from parkflow.domain.models import FineScheme

router = APIRouter(prefix="/admin", tags=["admin"])


class FineSchemeBody(BaseModel):
    """Current or requested facility fine scheme."""

    scheme: FineScheme = Field(description="fixed, progressive or hourly")


class FloorStats(BaseModel):
    floor: int
    total: int
    occupied: int
    available: int


class OccupancyResponse(BaseModel):
    total: int
    occupied: int
    available: int
    occupancy_rate: float = Field(description="Percentage of spots occupied")
    floors: list[FloorStats]


class RevenueResponse(BaseModel):
    total: Decimal
    parking: Decimal
    fines: Decimal
    payment_count: int
    average_payment: Decimal


class FineStatsResponse(BaseModel):
    unpaid_count: int
    unpaid_total: Decimal
    by_kind: dict[str, Decimal]


class StatsResponse(BaseModel):
    """Facility dashboard figures."""

    occupancy: OccupancyResponse
    revenue: RevenueResponse
    fines: FineStatsResponse
    open_tickets: int


class ParkedListResponse(BaseModel):
    tickets: list[TicketResponse]
    count: int


class FineListResponse(BaseModel):
    fines: list[FineResponse]
    count: int
    total: Decimal


@router.get(
    "/fine-scheme",
    response_model=FineSchemeBody,
    summary="Get facility fine scheme",
)
async def get_fine_scheme(admin: AdminSvc) -> FineSchemeBody:
    return FineSchemeBody(scheme=await admin.current_fine_scheme())


@router.put(
    "/fine-scheme",
    response_model=FineSchemeBody,
    summary="Change facility fine scheme",
    description="Applies to tickets opened from now on; open tickets keep their scheme.",
)
async def set_fine_scheme(request: FineSchemeBody, admin: AdminSvc) -> FineSchemeBody:
    return FineSchemeBody(scheme=await admin.change_fine_scheme(request.scheme))


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Facility statistics",
)
async def get_stats(admin: AdminSvc) -> StatsResponse:
    occupancy = await admin.occupancy_stats()
    revenue = await admin.revenue_stats()
    fines = await admin.fine_stats()
    parked = await admin.parked_vehicles()

    return StatsResponse(
        occupancy=OccupancyResponse(
            total=occupancy.total,
            occupied=occupancy.occupied,
            available=occupancy.available,
            occupancy_rate=occupancy.occupancy_rate,
            floors=[
                FloorStats(
                    floor=f.floor,
                    total=f.total,
                    occupied=f.occupied,
                    available=f.available,
                )
                for f in occupancy.floors
            ],
        ),
        revenue=RevenueResponse(
            total=revenue.total,
            parking=revenue.parking,
            fines=revenue.fines,
            payment_count=revenue.payment_count,
            average_payment=revenue.average_payment,
        ),
        fines=FineStatsResponse(
            unpaid_count=fines.unpaid_count,
            unpaid_total=fines.unpaid_total,
            by_kind=fines.by_kind,
        ),
        open_tickets=len(parked),
    )


@router.get(
    "/parked",
    response_model=ParkedListResponse,
    summary="Currently parked vehicles",
)
async def list_parked(admin: AdminSvc) -> ParkedListResponse:
    tickets = await admin.parked_vehicles()
    return ParkedListResponse(
        tickets=[TicketResponse.from_domain(t) for t in tickets],
        count=len(tickets),
    )


@router.get(
    "/fines",
    response_model=FineListResponse,
    summary="Unpaid fines",
    description="Unpaid fines oldest first, optionally for one plate.",
)
async def list_unpaid_fines(
    admin: AdminSvc,
    plate: Annotated[str | None, Query(description="Filter by plate")] = None,
) -> FineListResponse:
    fines = await admin.unpaid_fines(plate)
    return FineListResponse(
        fines=[FineResponse.from_domain(f) for f in fines],
        count=len(fines),
        total=sum((f.amount for f in fines), Decimal("0.00")),
    )
