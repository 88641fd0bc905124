"""
Response models shared by the API routes.

Money is serialized as decimal strings so no precision is lost.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from parkflow.domain.models import (
    Bill,
    ExitReceipt,
    Fine,
    FineKind,
    FineScheme,
    ParkingSpot,
    Payment,
    PaymentMethod,
    Reservation,
    SpotCategory,
    SpotStatus,
    Ticket,
)


class TicketResponse(BaseModel):
    """A parking ticket."""

    ticket_id: str = Field(description="Ticket identifier")
    plate: str = Field(description="Normalized plate number")
    spot_id: str = Field(description="Occupied spot")
    entry_time: datetime = Field(description="Session start (UTC)")
    exit_time: datetime | None = Field(default=None, description="Session end, null while open")
    fine_scheme: FineScheme = Field(description="Scheme locked in at entry")
    reservation_id: int | None = Field(default=None, description="Reservation consumed at entry")

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            ticket_id=ticket.ticket_id,
            plate=ticket.plate,
            spot_id=ticket.spot_id,
            entry_time=ticket.entry_time,
            exit_time=ticket.exit_time,
            fine_scheme=ticket.fine_scheme,
            reservation_id=ticket.reservation_id,
        )


class SpotResponse(BaseModel):
    """A parking spot."""

    spot_id: str
    floor: int
    row: int
    index: int
    category: SpotCategory
    hourly_rate: Decimal
    status: SpotStatus
    occupant_plate: str | None = None

    @classmethod
    def from_domain(cls, spot: ParkingSpot) -> "SpotResponse":
        return cls(
            spot_id=spot.spot_id,
            floor=spot.floor,
            row=spot.row,
            index=spot.index,
            category=spot.category,
            hourly_rate=spot.hourly_rate,
            status=spot.status,
            occupant_plate=spot.occupant_plate,
        )


class FineResponse(BaseModel):
    """A fine."""

    id: int | None
    plate: str
    ticket_id: str
    kind: FineKind
    amount: Decimal
    scheme: FineScheme
    is_paid: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, fine: Fine) -> "FineResponse":
        return cls(
            id=fine.id,
            plate=fine.plate,
            ticket_id=fine.ticket_id,
            kind=fine.kind,
            amount=fine.amount,
            scheme=fine.scheme,
            is_paid=fine.is_paid,
            created_at=fine.created_at,
        )


class BillResponse(BaseModel):
    """Everything owed for an open ticket."""

    ticket: TicketResponse
    vehicle_class: str
    exit_time: datetime
    hours_parked: int = Field(description="Ceiling-rounded hours")
    hourly_rate: Decimal
    parking_fee: Decimal
    new_fines: list[FineResponse]
    outstanding_fines: list[FineResponse]
    carried_balance: Decimal = Field(description="Balance carried from earlier visits")
    total_due: Decimal

    @classmethod
    def from_domain(cls, bill: Bill) -> "BillResponse":
        return cls(
            ticket=TicketResponse.from_domain(bill.ticket),
            vehicle_class=bill.vehicle.vehicle_class.value,
            exit_time=bill.exit_time,
            hours_parked=bill.hours_parked,
            hourly_rate=bill.hourly_rate,
            parking_fee=bill.parking_fee,
            new_fines=[FineResponse.from_domain(f) for f in bill.new_fines],
            outstanding_fines=[FineResponse.from_domain(f) for f in bill.outstanding_fines],
            carried_balance=bill.carried_balance,
            total_due=bill.total_due,
        )


class PaymentResponse(BaseModel):
    """A recorded exit payment."""

    id: int | None
    ticket_id: str
    parking_fee: Decimal
    fine_amount: Decimal
    total: Decimal
    method: PaymentMethod
    paid_at: datetime
    paid_fine_ids: list[int]

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            ticket_id=payment.ticket_id,
            parking_fee=payment.parking_fee,
            fine_amount=payment.fine_amount,
            total=payment.total,
            method=payment.method,
            paid_at=payment.paid_at,
            paid_fine_ids=list(payment.paid_fine_ids),
        )


class ExitReceiptResponse(BaseModel):
    """Result of a completed exit."""

    bill: BillResponse
    payment: PaymentResponse
    balance_cleared: Decimal
    parking_fee_paid: Decimal
    fine_amount_paid: Decimal
    new_balance: Decimal = Field(description="Unconsumed tender carried to the next visit")

    @classmethod
    def from_domain(cls, receipt: ExitReceipt) -> "ExitReceiptResponse":
        settlement = receipt.settlement
        return cls(
            bill=BillResponse.from_domain(receipt.bill),
            payment=PaymentResponse.from_domain(receipt.payment),
            balance_cleared=settlement.balance_cleared,
            parking_fee_paid=settlement.parking_fee_paid,
            fine_amount_paid=settlement.fine_amount_paid,
            new_balance=settlement.new_balance,
        )


class ReservationResponse(BaseModel):
    """A reservation on a reserved spot."""

    id: int | None
    spot_id: str
    plate: str | None
    is_active: bool
    reserved_at: datetime

    @classmethod
    def from_domain(cls, reservation: Reservation) -> "ReservationResponse":
        return cls(
            id=reservation.id,
            spot_id=reservation.spot_id,
            plate=reservation.plate,
            is_active=reservation.is_active,
            reserved_at=reservation.reserved_at,
        )
