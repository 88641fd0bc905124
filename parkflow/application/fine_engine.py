"""
Fine generation and bookkeeping.

Fines are computed with the scheme locked into the ticket, never the
facility's current scheme, and are kept unique per (ticket, kind) so
that repeated bill generation updates rather than duplicates them.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from parkflow.core.config import Settings
from parkflow.core.logging import get_logger
from parkflow.domain.errors import ConsistencyError
from parkflow.domain.fines import FineSchedule, calculate_fine
from parkflow.domain.models import Fine, FineKind, ParkingSpot, SpotCategory, Ticket, utcnow
from parkflow.infrastructure.store import Store

logger = get_logger(__name__)


def schedule_from_settings(settings: Settings) -> FineSchedule:
    """Build the fine schedule configured for this deployment."""
    return FineSchedule(
        overstay_threshold_hours=settings.overstay_threshold_hours,
        fixed_amount=settings.fixed_fine_amount,
        hourly_rate=settings.hourly_fine_rate,
        progressive_tiers=settings.progressive_tiers,
    )


class FineEngine:
    """
    Detects violations on a ticket and persists the resulting fines.

    Example:
        engine = FineEngine(store)
        fines = await engine.detect_and_generate_fines(ticket, spot, hours_parked=30)
    """

    def __init__(self, store: Store, schedule: FineSchedule | None = None):
        """
        Initialize fine engine.

        Args:
            store: Unit of work to persist fines through.
            schedule: Fine amounts; defaults to the standard schedule.
        """
        self._store = store
        self._schedule = schedule or FineSchedule()

    @property
    def schedule(self) -> FineSchedule:
        return self._schedule

    async def detect_and_generate_fines(
        self,
        ticket: Ticket,
        spot: ParkingSpot,
        hours_parked: int,
        *,
        reservation_honored: bool = False,
        detected_at: datetime | None = None,
    ) -> list[Fine]:
        """
        Generate or update the fines owed on a ticket.

        Overstay is always checked. A reserved-category spot also yields a
        misuse fine unless a reservation made the occupancy legitimate.
        A zero amount produces no fine and withdraws an unpaid one left by
        an earlier, later-dated bill for the same ticket.

        Args:
            ticket: Ticket whose locked scheme drives the calculation.
            spot: Spot the ticket occupies.
            hours_parked: Ceiling-rounded duration.
            reservation_honored: True when the entry consumed a reservation.
            detected_at: Creation time for new fines; defaults to now.

        Returns:
            list: Current fines for the ticket (new or updated).
        """
        kinds = [FineKind.OVERSTAY]
        if spot.category == SpotCategory.RESERVED and not reservation_honored:
            kinds.append(FineKind.RESERVED_MISUSE)

        fines: list[Fine] = []
        for kind in kinds:
            amount = calculate_fine(ticket.fine_scheme, hours_parked, kind, self._schedule)
            if amount <= 0:
                await self._withdraw(ticket, kind)
                continue
            fine = await self._upsert(ticket, kind, amount, detected_at or utcnow())
            if fine is not None:
                fines.append(fine)
        return fines

    async def _upsert(
        self,
        ticket: Ticket,
        kind: FineKind,
        amount: Decimal,
        detected_at: datetime,
    ) -> Fine | None:
        existing = await self._store.fines.for_ticket(ticket.ticket_id, kind)
        if existing is not None:
            if existing.is_paid:
                return None
            if existing.amount != amount or existing.scheme != ticket.fine_scheme:
                existing.amount = amount
                existing.scheme = ticket.fine_scheme
                await self._store.fines.update(existing)
                logger.info(
                    "fine_updated",
                    fine_id=existing.id,
                    ticket_id=ticket.ticket_id,
                    kind=kind.value,
                    amount=str(amount),
                )
            return existing

        fine = await self._store.fines.add(
            Fine(
                plate=ticket.plate,
                ticket_id=ticket.ticket_id,
                kind=kind,
                amount=amount,
                scheme=ticket.fine_scheme,
                created_at=detected_at,
            )
        )
        logger.info(
            "fine_generated",
            fine_id=fine.id,
            ticket_id=ticket.ticket_id,
            kind=kind.value,
            scheme=ticket.fine_scheme.value,
            amount=str(amount),
        )
        return fine

    async def _withdraw(self, ticket: Ticket, kind: FineKind) -> None:
        existing = await self._store.fines.for_ticket(ticket.ticket_id, kind)
        if existing is None or existing.is_paid:
            return
        await self._store.fines.remove_unpaid(existing.id)
        logger.info(
            "fine_withdrawn",
            fine_id=existing.id,
            ticket_id=ticket.ticket_id,
            kind=kind.value,
            amount=str(existing.amount),
        )

    async def unpaid_fines(self, plate: str) -> list[Fine]:
        """Unpaid fines for a plate, oldest first."""
        return await self._store.fines.list_unpaid(plate)

    async def all_unpaid(self) -> list[Fine]:
        return await self._store.fines.list_unpaid()

    async def total_unpaid(self, plate: str) -> Decimal:
        return await self._store.fines.total_unpaid(plate)

    async def mark_paid(self, fine_ids: Sequence[int], payment_id: int) -> None:
        """
        Mark fines as paid by a recorded payment.

        Raises:
            ConsistencyError: If any fine is unknown or already paid.
        """
        if not fine_ids:
            return
        changed = await self._store.fines.mark_paid(fine_ids, payment_id)
        if changed != len(set(fine_ids)):
            raise ConsistencyError(
                f"Payment {payment_id} expected to settle {len(fine_ids)} fines, updated {changed}"
            )
