"""
Reservation tracking for reserved-category spots.

At most one reservation per spot is active at a time. Reservations are
independent of occupancy: consuming one is the entry workflow's job.
"""

from parkflow.core.logging import get_logger
from parkflow.domain.errors import (
    NoActiveReservationError,
    NotReservedCategoryError,
    ReservationConflictError,
    ReservationNotFoundError,
    SpotNotFoundError,
)
from parkflow.domain.models import Reservation, SpotCategory, utcnow
from parkflow.infrastructure.store import Store

logger = get_logger(__name__)


class ReservationManager:
    """
    Claims, assigns, consumes and cancels reservations.

    Example:
        manager = ReservationManager(store)
        reservation = await manager.claim("F1-R1-S10", plate="ABC1234")
        assert await manager.is_satisfied_by("F1-R1-S10", "ABC1234")
    """

    def __init__(self, store: Store):
        self._store = store

    async def claim(self, spot_id: str, plate: str | None = None) -> Reservation:
        """
        Reserve a spot.

        A second claim while one is active returns the active reservation
        unchanged, so retries never create duplicates.

        Args:
            spot_id: Reserved-category spot.
            plate: Claimant plate, or None for an open claim.

        Returns:
            Reservation: The new or already-active reservation.

        Raises:
            SpotNotFoundError: If no spot has this id.
            NotReservedCategoryError: If the spot is not reserved-category.
        """
        spot = await self._store.spots.get(spot_id)
        if spot is None:
            raise SpotNotFoundError(f"Spot {spot_id} not found")
        if spot.category != SpotCategory.RESERVED:
            raise NotReservedCategoryError(
                f"Spot {spot_id} is {spot.category.value}, not reserved"
            )

        existing = await self._store.reservations.active_for_spot(spot_id)
        if existing is not None:
            logger.info("reservation_exists", spot_id=spot_id, reservation_id=existing.id)
            return existing

        reservation = await self._store.reservations.add(
            Reservation(spot_id=spot_id, plate=plate, reserved_at=utcnow())
        )
        logger.info(
            "reservation_created",
            spot_id=spot_id,
            reservation_id=reservation.id,
            plate=plate,
        )
        return reservation

    async def consume(self, spot_id: str, plate: str) -> Reservation:
        """
        Deactivate the spot's active reservation and bind it to `plate`.

        Raises:
            NoActiveReservationError: If the spot has no active reservation.
            ReservationConflictError: If the reservation is held for another plate.
        """
        reservation = await self._store.reservations.active_for_spot(spot_id)
        if reservation is None:
            raise NoActiveReservationError(f"No active reservation for spot {spot_id}")
        if not reservation.accepts(plate):
            raise ReservationConflictError(
                f"Spot {spot_id} is reserved for {reservation.plate}"
            )

        reservation.plate = plate
        reservation.is_active = False
        await self._store.reservations.update(reservation)
        return reservation

    async def is_satisfied_by(self, spot_id: str, plate: str) -> bool:
        reservation = await self._store.reservations.active_for_spot(spot_id)
        return reservation is not None and reservation.accepts(plate)

    async def assign(self, reservation_id: int, plate: str) -> Reservation:
        """
        Bind an open reservation to a plate.

        Raises:
            ReservationNotFoundError: If the id is unknown.
            ReservationConflictError: If the reservation is inactive or
                already held for a plate.
        """
        reservation = await self.get(reservation_id)
        if not reservation.is_active:
            raise ReservationConflictError(f"Reservation {reservation_id} is no longer active")
        if reservation.plate is not None:
            raise ReservationConflictError(
                f"Reservation {reservation_id} is already held for {reservation.plate}"
            )

        reservation.plate = plate
        await self._store.reservations.update(reservation)
        return reservation

    async def cancel(self, reservation_id: int) -> Reservation:
        """
        Deactivate a reservation without consuming it.

        Raises:
            ReservationNotFoundError: If the id is unknown.
            ReservationConflictError: If the reservation is already inactive.
        """
        reservation = await self.get(reservation_id)
        if not reservation.is_active:
            raise ReservationConflictError(f"Reservation {reservation_id} is no longer active")

        reservation.is_active = False
        await self._store.reservations.update(reservation)
        return reservation

    async def get(self, reservation_id: int) -> Reservation:
        reservation = await self._store.reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    async def active_for(self, spot_id: str) -> Reservation | None:
        return await self._store.reservations.active_for_spot(spot_id)

    async def active(self) -> list[Reservation]:
        return await self._store.reservations.list_active()

    async def history(self, spot_id: str) -> list[Reservation]:
        return await self._store.reservations.history(spot_id)
