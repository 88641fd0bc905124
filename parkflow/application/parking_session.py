"""
Parking session workflows.

Orchestrates the entry and exit paths:
1. Plate validation
2. Plate lock, then spot lock
3. Reservation check and spot allocation (entry)
4. Billing, fine generation and payment settlement (exit)
5. Ticket open/close
6. Commit with timeout
7. Event publication, only after a successful commit

Any failure before commit rolls the unit of work back and publishes
nothing. A ticket failure after allocation releases the spot explicitly
before the error is re-raised.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from parkflow.application.billing import BillingCalculator
from parkflow.application.events import EventBus, get_event_bus
from parkflow.application.fine_engine import FineEngine, schedule_from_settings
from parkflow.application.locks import LockRegistry, get_lock_registry
from parkflow.application.reservations import ReservationManager
from parkflow.application.spot_allocator import SpotAllocator
from parkflow.application.ticket_ledger import TicketLedger
from parkflow.core.config import Settings, get_settings
from parkflow.core.logging import bound_context, get_logger
from parkflow.domain.errors import (
    ConsistencyError,
    IncompatibleSpotError,
    LockTimeoutError,
    OpenTicketExistsError,
    ParkingError,
    ReservationConflictError,
    TicketNotFoundError,
    ValidationError,
    VehicleClassMismatchError,
    VehicleNotFoundError,
)
from parkflow.domain.models import (
    Bill,
    EventKind,
    ExitReceipt,
    Fine,
    ParkingSpot,
    Payment,
    PaymentMethod,
    SpotCategory,
    Ticket,
    Vehicle,
    VehicleClass,
    to_naive_utc,
    utcnow,
)
from parkflow.domain.services import PlateValidator, RateTable
from parkflow.domain.settlement import PaymentSettlement
from parkflow.infrastructure.store import Store

logger = get_logger(__name__)


@dataclass(frozen=True)
class _EntryOutcome:
    ticket: Ticket
    spot: ParkingSpot
    vehicle_registered: bool


@dataclass(frozen=True)
class _ExitOutcome:
    receipt: ExitReceipt
    released_spot: ParkingSpot
    raised_fines: tuple[Fine, ...]


def _raised(fines: tuple[Fine, ...], known: dict[int, Decimal]) -> tuple[Fine, ...]:
    """Fines that are new or whose amount changed since `known` was read."""
    return tuple(f for f in fines if known.get(f.id) != f.amount)


class ParkingSessionService:
    """
    Entry, quote and exit workflows over one unit of work.

    Create one service per request. Locks and the event bus are shared
    process-wide.

    Example:
        service = ParkingSessionService(store)
        ticket = await service.enter("ABC1234", VehicleClass.STANDARD, "F1-R1-S4")
        bill = await service.quote("ABC1234")
        receipt = await service.exit("ABC1234", Decimal("20.00"), PaymentMethod.CASH)
    """

    def __init__(
        self,
        store: Store,
        locks: LockRegistry | None = None,
        event_bus: EventBus | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize session service.

        Args:
            store: Unit of work for this request.
            locks: Per-plate and per-spot locks; defaults to the global registry.
            event_bus: Bus for post-commit events; defaults to the global bus.
            settings: Configuration; defaults to the cached settings.
        """
        self._store = store
        self._locks = locks or get_lock_registry()
        self._bus = event_bus or get_event_bus()
        self._settings = settings or get_settings()

        rate_table = RateTable(accessible_surcharge_rate=self._settings.accessible_surcharge_rate)
        self._validator = PlateValidator()
        self._rates = rate_table
        self._allocator = SpotAllocator(store, rate_table)
        self._reservations = ReservationManager(store)
        self._ledger = TicketLedger(store, default_scheme=self._settings.default_fine_scheme)
        self._fines = FineEngine(store, schedule_from_settings(self._settings))
        self._billing = BillingCalculator(self._fines, rate_table)
        self._settlement = PaymentSettlement()

    @property
    def allocator(self) -> SpotAllocator:
        return self._allocator

    @property
    def ledger(self) -> TicketLedger:
        return self._ledger

    @property
    def fines(self) -> FineEngine:
        return self._fines

    async def enter(
        self,
        plate: str,
        vehicle_class: VehicleClass,
        spot_id: str,
        now: datetime | None = None,
    ) -> Ticket:
        """
        Park a vehicle in a chosen spot.

        Args:
            plate: Plate as entered.
            vehicle_class: Class of the arriving vehicle.
            spot_id: Spot the driver chose.
            now: Entry time; defaults to the current time.

        Returns:
            Ticket: The open ticket.

        Raises:
            ValidationError: Malformed plate, incompatible spot or a class
                that differs from the registered one.
            ConflictError: Spot occupied, open ticket exists or the spot
                is reserved for another plate.
            NotFoundError: Unknown spot.
            LockTimeoutError: A lock or the commit timed out.
        """
        plate = self._validator.validate(plate)
        entry_time = to_naive_utc(now) if now else utcnow()
        timeout = self._settings.lock_timeout_seconds

        with bound_context(plate=plate, spot_id=spot_id):
            async with self._locks.plates.hold(plate, timeout):
                async with self._locks.spots.hold(spot_id, timeout):
                    try:
                        outcome = await self._enter_locked(plate, vehicle_class, spot_id, entry_time)
                        await self._commit()
                    except ParkingError as e:
                        await self._store.rollback()
                        logger.warning("entry_rejected", error=type(e).__name__, reason=str(e))
                        raise
                    except Exception:
                        await self._store.rollback()
                        logger.exception("entry_failed")
                        raise

            logger.info(
                "vehicle_entered",
                ticket_id=outcome.ticket.ticket_id,
                vehicle_class=vehicle_class.value,
                scheme=outcome.ticket.fine_scheme.value,
                new_vehicle=outcome.vehicle_registered,
            )
            self._bus.publish(EventKind.VEHICLE_ENTERED, outcome.ticket)
            self._bus.publish(EventKind.SPOT_STATUS_CHANGED, outcome.spot)
        return outcome.ticket

    async def _enter_locked(
        self,
        plate: str,
        vehicle_class: VehicleClass,
        spot_id: str,
        entry_time: datetime,
    ) -> _EntryOutcome:
        registered = False
        vehicle = await self._store.vehicles.get(plate)
        if vehicle is None:
            vehicle = await self._store.vehicles.add(
                Vehicle(plate=plate, vehicle_class=vehicle_class, registered_at=entry_time)
            )
            registered = True
        elif vehicle.vehicle_class != vehicle_class:
            raise VehicleClassMismatchError(
                f"Plate {plate} is registered as {vehicle.vehicle_class.value}, "
                f"not {vehicle_class.value}"
            )

        open_ticket = await self._ledger.active_ticket(plate)
        if open_ticket is not None:
            raise OpenTicketExistsError(
                f"Plate {plate} already has open ticket {open_ticket.ticket_id}"
            )

        spot = await self._allocator.get(spot_id)
        if not self._rates.can_park(vehicle_class, spot.category):
            raise IncompatibleSpotError(
                f"A {vehicle_class.value} vehicle cannot park in {spot.category.value} spot {spot_id}"
            )

        reservation_id = None
        if spot.category == SpotCategory.RESERVED:
            reservation = await self._reservations.active_for(spot_id)
            if reservation is None:
                logger.info("reserved_spot_unreserved_entry")
            elif not reservation.accepts(plate):
                raise ReservationConflictError(
                    f"Spot {spot_id} is reserved for {reservation.plate}"
                )
            else:
                reservation_id = (await self._reservations.consume(spot_id, plate)).id

        spot = await self._allocator.allocate(spot_id, plate)
        try:
            ticket = await self._ledger.open(plate, spot_id, entry_time, reservation_id)
        except Exception:
            await self._allocator.release(spot_id)
            logger.warning("entry_compensated", action="spot_released")
            raise

        return _EntryOutcome(ticket=ticket, spot=spot, vehicle_registered=registered)

    async def quote(self, plate: str, exit_time: datetime | None = None) -> Bill:
        """
        Preview the bill for a parked vehicle.

        Fines for the open ticket are generated, updated or withdrawn and
        committed, so repeated quotes never duplicate them. A fine_generated
        event is published for every fine that is new or changed amount.

        Raises:
            TicketNotFoundError: If the plate has no open ticket.
        """
        plate = self._validator.validate(plate)
        exit_time = to_naive_utc(exit_time) if exit_time else utcnow()

        with bound_context(plate=plate):
            async with self._locks.plates.hold(plate, self._settings.lock_timeout_seconds):
                try:
                    ticket, vehicle, spot = await self._load_session(plate)
                    known = await self._unpaid_amounts(plate)
                    bill = await self._billing.generate_bill(ticket, vehicle, spot, exit_time)
                    await self._commit()
                except Exception:
                    await self._store.rollback()
                    raise

            for fine in _raised(bill.new_fines, known):
                self._bus.publish(EventKind.FINE_GENERATED, fine)
        return bill

    async def exit(
        self,
        plate: str,
        tendered: Decimal | int | str,
        method: PaymentMethod,
        exit_time: datetime | None = None,
    ) -> ExitReceipt:
        """
        Settle and close a parking session.

        Args:
            plate: Plate as entered.
            tendered: Amount handed over.
            method: Cash or card.
            exit_time: Exit time; defaults to the current time.

        Returns:
            ExitReceipt: Bill, settlement, payment and closed ticket.

        Raises:
            ValidationError: Malformed plate, negative tender or an exit
                time before entry.
            NotFoundError: No open ticket for the plate.
            ConsistencyError: Stored state disagrees with the ticket.
            LockTimeoutError: A lock or the commit timed out.
        """
        plate = self._validator.validate(plate)
        amount = self._parse_amount(tendered)
        exit_time = to_naive_utc(exit_time) if exit_time else utcnow()
        timeout = self._settings.lock_timeout_seconds

        with bound_context(plate=plate):
            async with self._locks.plates.hold(plate, timeout):
                ticket = await self._ledger.active_ticket(plate)
                if ticket is None:
                    raise TicketNotFoundError(f"No open ticket for plate {plate}")

                with bound_context(spot_id=ticket.spot_id, ticket_id=ticket.ticket_id):
                    async with self._locks.spots.hold(ticket.spot_id, timeout):
                        try:
                            outcome = await self._exit_locked(ticket, amount, method, exit_time)
                            await self._commit()
                        except ParkingError as e:
                            await self._store.rollback()
                            logger.warning("exit_rejected", error=type(e).__name__, reason=str(e))
                            raise
                        except Exception:
                            await self._store.rollback()
                            logger.exception("exit_failed")
                            raise

            receipt = outcome.receipt
            settlement = receipt.settlement
            logger.info(
                "payment_settled",
                ticket_id=ticket.ticket_id,
                tendered=str(amount),
                parking_fee=str(receipt.bill.parking_fee),
                parking_fee_paid=str(settlement.parking_fee_paid),
                fines_paid=len(settlement.paid_fines),
                fine_amount_paid=str(settlement.fine_amount_paid),
                new_balance=str(settlement.new_balance),
            )

            for fine in outcome.raised_fines:
                self._bus.publish(EventKind.FINE_GENERATED, fine)
            for fine in settlement.paid_fines:
                self._bus.publish(EventKind.FINE_PAID, fine)
            self._bus.publish(EventKind.PAYMENT_PROCESSED, receipt.payment)
            self._bus.publish(EventKind.VEHICLE_EXITED, receipt.ticket)
            self._bus.publish(EventKind.SPOT_STATUS_CHANGED, outcome.released_spot)
        return receipt

    async def _exit_locked(
        self,
        ticket: Ticket,
        tendered: Decimal,
        method: PaymentMethod,
        exit_time: datetime,
    ) -> _ExitOutcome:
        vehicle = await self._store.vehicles.get(ticket.plate)
        if vehicle is None:
            raise ConsistencyError(f"Open ticket {ticket.ticket_id} has no registered vehicle")
        spot = await self._allocator.get(ticket.spot_id)
        if spot.occupant_plate != ticket.plate:
            raise ConsistencyError(
                f"Spot {spot.spot_id} holds {spot.occupant_plate!r}, ticket says {ticket.plate}"
            )

        known = await self._unpaid_amounts(ticket.plate)
        bill = await self._billing.generate_bill(ticket, vehicle, spot, exit_time)
        settlement = self._settlement.apply(
            vehicle.balance,
            tendered,
            bill.parking_fee,
            bill.payable_fines,
        )

        payment = await self._store.payments.add(
            Payment(
                ticket_id=ticket.ticket_id,
                parking_fee=settlement.parking_fee_paid,
                fine_amount=settlement.fine_amount_paid,
                method=method,
                paid_at=exit_time,
                paid_fine_ids=tuple(fine.id for fine in settlement.paid_fines),
            )
        )
        await self._fines.mark_paid(payment.paid_fine_ids, payment.id)
        closed = await self._ledger.close(ticket.ticket_id, exit_time)
        released = await self._allocator.release(spot.spot_id)
        await self._store.vehicles.update_balance(ticket.plate, settlement.new_balance)

        return _ExitOutcome(
            receipt=ExitReceipt(bill=bill, settlement=settlement, payment=payment, ticket=closed),
            released_spot=released,
            raised_fines=_raised(bill.new_fines, known),
        )

    async def _unpaid_amounts(self, plate: str) -> dict[int, Decimal]:
        return {fine.id: fine.amount for fine in await self._fines.unpaid_fines(plate)}

    async def _load_session(self, plate: str) -> tuple[Ticket, Vehicle, ParkingSpot]:
        ticket = await self._ledger.active_ticket(plate)
        if ticket is None:
            raise TicketNotFoundError(f"No open ticket for plate {plate}")
        vehicle = await self._store.vehicles.get(plate)
        if vehicle is None:
            raise VehicleNotFoundError(f"Vehicle {plate} not found")
        spot = await self._allocator.get(ticket.spot_id)
        return ticket, vehicle, spot

    async def _commit(self) -> None:
        try:
            await asyncio.wait_for(self._store.commit(), self._settings.store_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise LockTimeoutError(
                f"Store commit exceeded {self._settings.store_timeout_seconds}s"
            ) from e

    @staticmethod
    def _parse_amount(tendered: Decimal | int | str) -> Decimal:
        try:
            amount = Decimal(str(tendered))
        except InvalidOperation as e:
            raise ValidationError(f"Invalid tendered amount {tendered!r}") from e
        if not amount.is_finite() or amount < 0:
            raise ValidationError(f"Tendered amount must be a non-negative number, got {tendered}")
        return amount
