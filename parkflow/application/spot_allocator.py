"""
Spot allocation.

Owns spot occupancy. Every state change goes through a conditional
store update, so a spot is never handed to two vehicles even if two
workflows race past the in-process lock.
"""

from dataclasses import replace

from parkflow.core.logging import get_logger
from parkflow.domain.errors import ConsistencyError, SpotNotFoundError, SpotUnavailableError
from parkflow.domain.models import ParkingSpot, SpotCategory, SpotStatus, VehicleClass
from parkflow.domain.services import RateTable
from parkflow.infrastructure.store import Store

logger = get_logger(__name__)


class SpotAllocator:
    """
    Allocates and releases parking spots.

    Example:
        allocator = SpotAllocator(store)
        candidates = await allocator.find_candidates(VehicleClass.STANDARD)
        spot = await allocator.allocate(candidates[0].spot_id, "ABC1234")
    """

    def __init__(self, store: Store, rate_table: RateTable | None = None):
        """
        Initialize allocator.

        Args:
            store: Unit of work to read and write spots through.
            rate_table: Compatibility table; defaults to the standard one.
        """
        self._store = store
        self._rates = rate_table or RateTable()

    async def get(self, spot_id: str) -> ParkingSpot:
        """
        Load a spot and check its occupancy invariant.

        Raises:
            SpotNotFoundError: If no spot has this id.
            ConsistencyError: If occupant and status disagree.
        """
        spot = await self._store.spots.get(spot_id)
        if spot is None:
            raise SpotNotFoundError(f"Spot {spot_id} not found")
        if not spot.is_consistent():
            raise ConsistencyError(
                f"Spot {spot_id} is {spot.status.value} with occupant {spot.occupant_plate!r}"
            )
        return spot

    async def find_candidates(
        self,
        vehicle_class: VehicleClass,
        floor: int | None = None,
    ) -> list[ParkingSpot]:
        """
        Available spots a vehicle class may use.

        Reserved spots are always included; whether the vehicle may
        actually take one is decided by the reservation check.

        Args:
            vehicle_class: Class of the arriving vehicle.
            floor: Restrict to one floor.

        Returns:
            list: Spots ordered by floor, row and index.
        """
        categories = [c for c in SpotCategory if self._rates.can_park(vehicle_class, c)]
        return await self._store.spots.find_many(
            floor=floor,
            categories=categories,
            status=SpotStatus.AVAILABLE,
        )

    async def allocate(self, spot_id: str, plate: str) -> ParkingSpot:
        """
        Occupy a spot.

        Args:
            spot_id: Spot to occupy.
            plate: Occupant plate.

        Returns:
            ParkingSpot: The spot in its occupied state.

        Raises:
            SpotNotFoundError: If no spot has this id.
            SpotUnavailableError: If the spot is already occupied.
        """
        spot = await self.get(spot_id)
        if not spot.is_available:
            raise SpotUnavailableError(f"Spot {spot_id} is occupied")
        if not await self._store.spots.mark_occupied(spot_id, plate):
            raise SpotUnavailableError(f"Spot {spot_id} was taken concurrently")

        logger.debug("spot_allocated", spot_id=spot_id, plate=plate)
        return replace(spot, status=SpotStatus.OCCUPIED, occupant_plate=plate)

    async def release(self, spot_id: str) -> ParkingSpot:
        """
        Free an occupied spot.

        Releasing an available spot is a caller error, not a no-op.

        Raises:
            SpotNotFoundError: If no spot has this id.
            SpotUnavailableError: If the spot is not occupied.
        """
        spot = await self.get(spot_id)
        if spot.is_available:
            raise SpotUnavailableError(f"Spot {spot_id} is not occupied")
        if not await self._store.spots.mark_available(spot_id):
            raise SpotUnavailableError(f"Spot {spot_id} was released concurrently")

        logger.debug("spot_released", spot_id=spot_id, plate=spot.occupant_plate)
        return replace(spot, status=SpotStatus.AVAILABLE, occupant_plate=None)

    async def change_category(self, spot_id: str, category: SpotCategory) -> ParkingSpot:
        """
        Re-categorise an available spot and reset its rate.

        Raises:
            SpotNotFoundError: If no spot has this id.
            SpotUnavailableError: If the spot is occupied.
        """
        spot = await self.get(spot_id)
        if not spot.is_available:
            raise SpotUnavailableError(f"Spot {spot_id} must be available to change its category")
        if not await self._store.spots.update_category(spot_id, category, category.base_rate):
            raise SpotUnavailableError(f"Spot {spot_id} was taken concurrently")
        return replace(spot, category=category, hourly_rate=category.base_rate)
