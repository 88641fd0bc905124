"""
Bill generation for an exiting vehicle.
"""

from datetime import datetime
from decimal import Decimal

from parkflow.application.fine_engine import FineEngine
from parkflow.domain.models import Bill, ParkingSpot, Ticket, Vehicle, VehicleClass
from parkflow.domain.services import DurationCalculator, RateTable

CENTS = Decimal("0.01")


class BillingCalculator:
    """
    Combines duration, rate and fines into a bill.

    Generating a bill persists the ticket's fines through the FineEngine,
    so it must run inside the caller's unit of work.

    Example:
        billing = BillingCalculator(FineEngine(store))
        bill = await billing.generate_bill(ticket, vehicle, spot, exit_time)
    """

    def __init__(
        self,
        fine_engine: FineEngine,
        rate_table: RateTable | None = None,
        durations: DurationCalculator | None = None,
    ):
        self._fines = fine_engine
        self._rates = rate_table or RateTable()
        self._durations = durations or DurationCalculator()

    def duration_hours(self, entry_time: datetime, exit_time: datetime) -> int:
        return self._durations.hours_between(entry_time, exit_time)

    def hourly_rate(self, vehicle_class: VehicleClass, spot: ParkingSpot) -> Decimal:
        return self._rates.hourly_rate(vehicle_class, spot)

    async def generate_bill(
        self,
        ticket: Ticket,
        vehicle: Vehicle,
        spot: ParkingSpot,
        exit_time: datetime,
    ) -> Bill:
        """
        Build the bill for a ticket.

        Args:
            ticket: Open ticket being billed.
            vehicle: Vehicle on the ticket.
            spot: Spot the ticket occupies.
            exit_time: Exit time to bill up to.

        Returns:
            Bill: Fee, this ticket's fines and earlier unpaid fines.

        Raises:
            ValidationError: If exit_time is before the entry time.
        """
        hours = self.duration_hours(ticket.entry_time, exit_time)
        rate = self.hourly_rate(vehicle.vehicle_class, spot)
        fee = (rate * hours).quantize(CENTS)

        new_fines = await self._fines.detect_and_generate_fines(
            ticket,
            spot,
            hours,
            reservation_honored=ticket.reservation_id is not None,
        )
        new_ids = {fine.id for fine in new_fines}
        outstanding = [
            fine for fine in await self._fines.unpaid_fines(vehicle.plate)
            if fine.id not in new_ids
        ]

        return Bill(
            ticket=ticket,
            vehicle=vehicle,
            spot=spot,
            exit_time=exit_time,
            hours_parked=hours,
            hourly_rate=rate,
            parking_fee=fee,
            new_fines=tuple(new_fines),
            outstanding_fines=tuple(outstanding),
        )
