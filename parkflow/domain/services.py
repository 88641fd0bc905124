"""
Domain services for plates, durations and rates.

These services contain pure business logic with no infrastructure
dependencies. They can be easily unit tested.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from parkflow.domain.errors import InvalidPlateError, ValidationError
from parkflow.domain.models import ParkingSpot, SpotCategory, VehicleClass

SECONDS_PER_HOUR = 3600


@dataclass
class PlateValidator:
    """
    Normalizes and validates plate numbers.

    Plates are three letters followed by four digits. Surrounding
    whitespace is stripped and letters are uppercased before matching.

    Example:
        >>> validator = PlateValidator()
        >>> validator.normalize(" abc1234 ")
        'ABC1234'
        >>> validator.is_valid("ABC1234")
        True
        >>> validator.is_valid("AB12345")
        False
    """

    PLATE_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r"^[A-Z]{3}[0-9]{4}$")

    def normalize(self, plate_number: str) -> str:
        """
        Normalize a raw plate to canonical form.

        Args:
            plate_number: Plate as entered.

        Returns:
            str: Trimmed, uppercased plate.
        """
        if not plate_number:
            return ""
        return plate_number.strip().upper()

    def is_valid(self, plate_number: str) -> bool:
        """
        Check if a normalized plate matches the facility format.

        Args:
            plate_number: Normalized plate number.

        Returns:
            bool: True if the plate matches.
        """
        if not plate_number:
            return False
        return self.PLATE_PATTERN.match(plate_number) is not None

    def validate(self, plate_number: str) -> str:
        """
        Normalize and validate in one step.

        Args:
            plate_number: Plate as entered.

        Returns:
            str: Normalized plate.

        Raises:
            InvalidPlateError: If the plate does not match the format.
        """
        normalized = self.normalize(plate_number)
        if not self.is_valid(normalized):
            raise InvalidPlateError(
                f"Invalid plate number {plate_number!r}: expected 3 letters + 4 digits (e.g. ABC1234)"
            )
        return normalized


@dataclass
class DurationCalculator:
    """
    Converts an entry/exit pair into billable hours.

    Any started hour counts as a full hour. Sub-second precision is
    dropped before rounding.

    Example:
        >>> calc = DurationCalculator()
        >>> calc.hours_between(datetime(2026, 1, 1, 10), datetime(2026, 1, 1, 11, 0, 1))
        2
    """

    def hours_between(self, entry_time: datetime, exit_time: datetime) -> int:
        """
        Ceiling-rounded hours between entry and exit.

        Args:
            entry_time: When the session started.
            exit_time: When the session ended.

        Returns:
            int: ceil(whole seconds / 3600).

        Raises:
            ValidationError: If exit_time is before entry_time.
        """
        if exit_time < entry_time:
            raise ValidationError(
                f"Exit time {exit_time.isoformat()} is before entry time {entry_time.isoformat()}"
            )
        seconds = int((exit_time - entry_time).total_seconds())
        return -(-seconds // SECONDS_PER_HOUR)


@dataclass
class RateTable:
    """
    Spot compatibility and hourly rates per vehicle class.

    Two lookup tables replace per-vehicle overrides: which spot categories
    a class may use, and what it pays in them. Reserved spots are open to
    every class; whether the occupancy is legitimate is decided by the
    reservation check.

    Attributes:
        accessible_surcharge_rate: Flat hourly rate a mobility-accessible
            vehicle pays outside accessible spots.
    """

    COMPATIBLE: ClassVar[dict[VehicleClass, frozenset[SpotCategory]]] = {
        VehicleClass.TWO_WHEEL: frozenset({SpotCategory.COMPACT}),
        VehicleClass.STANDARD: frozenset({SpotCategory.COMPACT, SpotCategory.REGULAR}),
        VehicleClass.LARGE: frozenset({SpotCategory.REGULAR}),
        VehicleClass.MOBILITY_ACCESSIBLE: frozenset(SpotCategory),
    }

    accessible_surcharge_rate: Decimal = Decimal("2.00")

    def can_park(self, vehicle_class: VehicleClass, category: SpotCategory) -> bool:
        """
        Check whether a vehicle class may occupy a spot category.

        Args:
            vehicle_class: The vehicle's class.
            category: The spot's category.

        Returns:
            bool: True if allowed (reserved spots are always allowed).
        """
        if category == SpotCategory.RESERVED:
            return True
        return category in self.COMPATIBLE[vehicle_class]

    def hourly_rate(self, vehicle_class: VehicleClass, spot: ParkingSpot) -> Decimal:
        """
        Hourly rate a vehicle class pays in a given spot.

        Args:
            vehicle_class: The vehicle's class.
            spot: The occupied spot.

        Returns:
            Decimal: Rate per started hour.
        """
        if vehicle_class == VehicleClass.MOBILITY_ACCESSIBLE:
            if spot.category == SpotCategory.ACCESSIBLE:
                return Decimal("0.00")
            return self.accessible_surcharge_rate
        return spot.hourly_rate
