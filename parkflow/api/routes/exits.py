"""
Vehicle exit API routes.

Provides the bill preview and the settle-and-leave endpoint.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from parkflow.api.deps import SessionSvc
from parkflow.api.schemas import BillResponse, ExitReceiptResponse
from parkflow.domain.models import PaymentMethod

router = APIRouter(prefix="/exits", tags=["exits"])


class ExitRequest(BaseModel):
    """Request body for settling and leaving."""

    plate: str = Field(description="Plate number", examples=["ABC1234"])
    tendered: Decimal = Field(ge=0, description="Amount handed over")
    method: PaymentMethod = Field(default=PaymentMethod.CASH, description="Cash or card")
    exit_time: datetime | None = Field(
        default=None,
        description="Exit time (UTC); defaults to now",
    )


@router.get(
    "/{plate}/bill",
    response_model=BillResponse,
    summary="Preview bill",
    description="Compute what a parked vehicle owes if it left now.",
)
async def preview_bill(
    plate: Annotated[str, Path(description="Plate number")],
    service: SessionSvc,
    exit_time: Annotated[datetime | None, Query(description="Exit time to bill up to")] = None,
) -> BillResponse:
    bill = await service.quote(plate, exit_time=exit_time)
    return BillResponse.from_domain(bill)


@router.post(
    "",
    response_model=ExitReceiptResponse,
    summary="Settle and exit",
    description="Apply the tendered amount, close the ticket and free the spot.",
)
async def exit_vehicle(
    request: ExitRequest,
    service: SessionSvc,
) -> ExitReceiptResponse:
    """
    Settle and exit.

    The tender is applied to any carried shortfall, then the parking fee,
    then unpaid fines oldest first. Whatever is left is carried as the
    vehicle's balance.
    """
    receipt = await service.exit(
        plate=request.plate,
        tendered=request.tendered,
        method=request.method,
        exit_time=request.exit_time,
    )
    return ExitReceiptResponse.from_domain(receipt)
