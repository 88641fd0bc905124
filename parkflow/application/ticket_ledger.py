"""
Ticket ledger.

A ticket is Open from entry until its single close, then Closed for
good. The facility's fine scheme is captured when the ticket opens and
is never re-read for that ticket.
"""

import uuid
from dataclasses import replace
from datetime import datetime

from parkflow.core.logging import get_logger
from parkflow.domain.errors import (
    OpenTicketExistsError,
    TicketAlreadyClosedError,
    TicketNotFoundError,
    ValidationError,
)
from parkflow.domain.models import FineScheme, Ticket
from parkflow.infrastructure.store import FINE_SCHEME_KEY, Store

logger = get_logger(__name__)


def new_ticket_id(plate: str) -> str:
    """Generate a ticket id such as T-ABC1234-9f86d081."""
    return f"T-{plate}-{uuid.uuid4().hex[:8]}"


class TicketLedger:
    """
    Opens and closes parking tickets.

    Example:
        ledger = TicketLedger(store)
        ticket = await ledger.open("ABC1234", "F1-R1-S4", entry_time)
        closed = await ledger.close(ticket.ticket_id, exit_time)
    """

    def __init__(self, store: Store, default_scheme: FineScheme = FineScheme.FIXED):
        """
        Initialize ledger.

        Args:
            store: Unit of work to persist tickets through.
            default_scheme: Scheme used while none is stored.
        """
        self._store = store
        self._default_scheme = default_scheme

    async def current_scheme(self) -> FineScheme:
        """Facility-wide fine scheme as currently stored."""
        value = await self._store.config.get(FINE_SCHEME_KEY)
        return FineScheme(value) if value else self._default_scheme

    async def open(
        self,
        plate: str,
        spot_id: str,
        entry_time: datetime,
        reservation_id: int | None = None,
    ) -> Ticket:
        """
        Open a ticket for a plate.

        Args:
            plate: Normalized plate.
            spot_id: Spot already allocated to the plate.
            entry_time: Session start.
            reservation_id: Reservation consumed by this entry, if any.

        Returns:
            Ticket: The open ticket with the current scheme locked in.

        Raises:
            OpenTicketExistsError: If the plate already has an open ticket.
        """
        existing = await self._store.tickets.open_for_plate(plate)
        if existing is not None:
            raise OpenTicketExistsError(
                f"Plate {plate} already has open ticket {existing.ticket_id}"
            )

        ticket = Ticket(
            ticket_id=new_ticket_id(plate),
            plate=plate,
            spot_id=spot_id,
            entry_time=entry_time,
            fine_scheme=await self.current_scheme(),
            reservation_id=reservation_id,
        )
        await self._store.tickets.add(ticket)

        logger.info(
            "ticket_opened",
            ticket_id=ticket.ticket_id,
            scheme=ticket.fine_scheme.value,
        )
        return ticket

    async def close(self, ticket_id: str, exit_time: datetime) -> Ticket:
        """
        Close an open ticket.

        Closing twice is an error, never a no-op.

        Raises:
            TicketNotFoundError: If the id is unknown.
            TicketAlreadyClosedError: If the ticket is already closed.
            ValidationError: If exit_time is before the entry time.
        """
        ticket = await self.get(ticket_id)
        if not ticket.is_open:
            raise TicketAlreadyClosedError(f"Ticket {ticket_id} is already closed")
        if exit_time < ticket.entry_time:
            raise ValidationError(f"Exit time is before entry time for ticket {ticket_id}")
        if not await self._store.tickets.close(ticket_id, exit_time):
            raise TicketAlreadyClosedError(f"Ticket {ticket_id} was closed concurrently")

        logger.info("ticket_closed", ticket_id=ticket_id)
        return replace(ticket, exit_time=exit_time)

    async def get(self, ticket_id: str) -> Ticket:
        ticket = await self._store.tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def active_ticket(self, plate: str) -> Ticket | None:
        return await self._store.tickets.open_for_plate(plate)

    async def open_tickets(self) -> list[Ticket]:
        return await self._store.tickets.list_open()

    async def count_open(self) -> int:
        return await self._store.tickets.count_open()
