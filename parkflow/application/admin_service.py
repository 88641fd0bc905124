"""
Facility administration.

Layout seeding, fine-scheme changes, spot re-categorisation,
reservations and reporting. Each mutating method is its own unit of
work and commits before returning.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal

from parkflow.application.events import EventBus, get_event_bus
from parkflow.application.locks import LockRegistry, get_lock_registry
from parkflow.application.reservations import ReservationManager
from parkflow.application.spot_allocator import SpotAllocator
from parkflow.application.ticket_ledger import TicketLedger
from parkflow.core.config import Settings, get_settings
from parkflow.core.logging import get_logger
from parkflow.domain.errors import LockTimeoutError, ReservationConflictError
from parkflow.domain.models import (
    ZERO,
    EventKind,
    Fine,
    FineScheme,
    ParkingSpot,
    Reservation,
    SpotCategory,
    SpotStatus,
    Ticket,
    VehicleClass,
)
from parkflow.domain.services import PlateValidator, RateTable
from parkflow.infrastructure.store import FINE_SCHEME_KEY, Store

logger = get_logger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class FloorOccupancy:
    floor: int
    total: int
    occupied: int

    @property
    def available(self) -> int:
        return self.total - self.occupied


@dataclass(frozen=True)
class OccupancyStats:
    """Facility-wide and per-floor occupancy."""

    total: int
    occupied: int
    floors: tuple[FloorOccupancy, ...] = ()

    @property
    def available(self) -> int:
        return self.total - self.occupied

    @property
    def occupancy_rate(self) -> float:
        return round(self.occupied / self.total * 100, 2) if self.total else 0.0


@dataclass(frozen=True)
class RevenueStats:
    total: Decimal
    parking: Decimal
    fines: Decimal
    payment_count: int

    @property
    def average_payment(self) -> Decimal:
        if not self.payment_count:
            return ZERO
        return (self.total / self.payment_count).quantize(CENTS)


@dataclass(frozen=True)
class FineStats:
    unpaid_count: int
    unpaid_total: Decimal
    by_kind: dict[str, Decimal] = field(default_factory=dict)


class FacilityAdminService:
    """
    Administrative operations on the facility.

    Example:
        admin = FacilityAdminService(store)
        await admin.initialize_layout()
        await admin.change_fine_scheme(FineScheme.PROGRESSIVE)
    """

    LAYOUT_ORDER = (
        SpotCategory.COMPACT,
        SpotCategory.REGULAR,
        SpotCategory.ACCESSIBLE,
        SpotCategory.RESERVED,
    )

    def __init__(
        self,
        store: Store,
        locks: LockRegistry | None = None,
        event_bus: EventBus | None = None,
        settings: Settings | None = None,
    ):
        self._store = store
        self._locks = locks or get_lock_registry()
        self._bus = event_bus or get_event_bus()
        self._settings = settings or get_settings()
        self._allocator = SpotAllocator(
            store,
            RateTable(accessible_surcharge_rate=self._settings.accessible_surcharge_rate),
        )
        self._reservations = ReservationManager(store)
        self._ledger = TicketLedger(store, default_scheme=self._settings.default_fine_scheme)
        self._validator = PlateValidator()

    # Layout and configuration

    async def initialize_layout(self) -> int:
        """
        Create every spot of the configured layout on an empty store.

        Within a row, spots are numbered compact first, then regular,
        accessible and reserved. Also seeds the fine scheme if none is
        stored. Does nothing to a store that already has spots.

        Returns:
            int: Number of spots created.
        """
        if await self._store.config.get(FINE_SCHEME_KEY) is None:
            await self._store.config.set(FINE_SCHEME_KEY, self._settings.default_fine_scheme.value)

        created = 0
        if await self._store.spots.count() == 0:
            per_row = {
                SpotCategory.COMPACT: self._settings.compact_spots_per_row,
                SpotCategory.REGULAR: self._settings.regular_spots_per_row,
                SpotCategory.ACCESSIBLE: self._settings.accessible_spots_per_row,
                SpotCategory.RESERVED: self._settings.reserved_spots_per_row,
            }
            row_layout = [c for c in self.LAYOUT_ORDER for _ in range(per_row[c])]
            for floor in range(1, self._settings.total_floors + 1):
                for row in range(1, self._settings.rows_per_floor + 1):
                    for index, category in enumerate(row_layout, start=1):
                        await self._store.spots.add(ParkingSpot.create(floor, row, index, category))
                        created += 1

        await self._commit()
        logger.info("layout_initialized", spots_created=created)
        return created

    async def current_fine_scheme(self) -> FineScheme:
        return await self._ledger.current_scheme()

    async def change_fine_scheme(self, scheme: FineScheme) -> FineScheme:
        """
        Change the facility-wide fine scheme.

        Only tickets opened afterwards use the new scheme.
        """
        previous = await self._ledger.current_scheme()
        await self._store.config.set(FINE_SCHEME_KEY, scheme.value)
        await self._commit()
        logger.info("fine_scheme_changed", previous=previous.value, scheme=scheme.value)
        return scheme

    async def change_spot_category(self, spot_id: str, category: SpotCategory) -> ParkingSpot:
        """
        Re-categorise an available spot.

        Raises:
            SpotNotFoundError: If no spot has this id.
            SpotUnavailableError: If the spot is occupied.
            ReservationConflictError: If a reserved spot with an active
                reservation would stop being reserved.
        """
        async with self._locks.spots.hold(spot_id, self._settings.lock_timeout_seconds):
            try:
                if category != SpotCategory.RESERVED:
                    active = await self._reservations.active_for(spot_id)
                    if active is not None:
                        raise ReservationConflictError(
                            f"Spot {spot_id} has active reservation {active.id}"
                        )
                spot = await self._allocator.change_category(spot_id, category)
                await self._commit()
            except Exception:
                await self._store.rollback()
                raise

        logger.info("spot_category_changed", spot_id=spot_id, category=category.value)
        self._bus.publish(EventKind.SPOT_TYPE_CHANGED, spot)
        return spot

    # Spots

    async def get_spot(self, spot_id: str) -> ParkingSpot:
        return await self._allocator.get(spot_id)

    async def list_spots(
        self,
        vehicle_class: VehicleClass | None = None,
        floor: int | None = None,
    ) -> list[ParkingSpot]:
        """All spots, or the available candidates for a vehicle class."""
        if vehicle_class is not None:
            return await self._allocator.find_candidates(vehicle_class, floor=floor)
        return await self._store.spots.find_many(floor=floor)

    # Reservations

    async def reserve_spot(self, spot_id: str, plate: str | None = None) -> Reservation:
        if plate is not None:
            plate = self._validator.validate(plate)
        async with self._locks.spots.hold(spot_id, self._settings.lock_timeout_seconds):
            try:
                reservation = await self._reservations.claim(spot_id, plate)
                await self._commit()
            except Exception:
                await self._store.rollback()
                raise
        return reservation

    async def assign_reservation(self, reservation_id: int, plate: str) -> Reservation:
        plate = self._validator.validate(plate)
        reservation = await self._reservations.get(reservation_id)
        async with self._locks.spots.hold(reservation.spot_id, self._settings.lock_timeout_seconds):
            try:
                reservation = await self._reservations.assign(reservation_id, plate)
                await self._commit()
            except Exception:
                await self._store.rollback()
                raise
        logger.info("reservation_assigned", reservation_id=reservation_id, plate=plate)
        return reservation

    async def cancel_reservation(self, reservation_id: int) -> Reservation:
        reservation = await self._reservations.get(reservation_id)
        async with self._locks.spots.hold(reservation.spot_id, self._settings.lock_timeout_seconds):
            try:
                reservation = await self._reservations.cancel(reservation_id)
                await self._commit()
            except Exception:
                await self._store.rollback()
                raise
        logger.info("reservation_cancelled", reservation_id=reservation_id)
        return reservation

    async def active_reservations(self) -> list[Reservation]:
        return await self._reservations.active()

    async def reservation_history(self, spot_id: str) -> list[Reservation]:
        return await self._reservations.history(spot_id)

    # Reports

    async def occupancy_stats(self) -> OccupancyStats:
        spots = await self._store.spots.find_many()
        floors: dict[int, list[ParkingSpot]] = {}
        for spot in spots:
            floors.setdefault(spot.floor, []).append(spot)

        per_floor = tuple(
            FloorOccupancy(
                floor=floor,
                total=len(floor_spots),
                occupied=sum(1 for s in floor_spots if s.status == SpotStatus.OCCUPIED),
            )
            for floor, floor_spots in sorted(floors.items())
        )
        return OccupancyStats(
            total=len(spots),
            occupied=sum(f.occupied for f in per_floor),
            floors=per_floor,
        )

    async def revenue_stats(self) -> RevenueStats:
        totals = await self._store.payments.totals()
        return RevenueStats(
            total=totals.total,
            parking=totals.parking_total,
            fines=totals.fine_total,
            payment_count=totals.count,
        )

    async def fine_stats(self) -> FineStats:
        unpaid = await self._store.fines.list_unpaid()
        by_kind: dict[str, Decimal] = {}
        for fine in unpaid:
            by_kind[fine.kind.value] = by_kind.get(fine.kind.value, ZERO) + fine.amount
        return FineStats(
            unpaid_count=len(unpaid),
            unpaid_total=await self._store.fines.total_unpaid(),
            by_kind=by_kind,
        )

    async def parked_vehicles(self) -> list[Ticket]:
        """Open tickets, oldest entry first."""
        return await self._ledger.open_tickets()

    async def unpaid_fines(self, plate: str | None = None) -> list[Fine]:
        if plate is not None:
            plate = self._validator.validate(plate)
        return await self._store.fines.list_unpaid(plate)

    async def _commit(self) -> None:
        try:
            await asyncio.wait_for(self._store.commit(), self._settings.store_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise LockTimeoutError(
                f"Store commit exceeded {self._settings.store_timeout_seconds}s"
            ) from e
