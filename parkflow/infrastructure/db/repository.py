"""
Repository pattern implementations for data access.

Repositories abstract database operations and provide
a clean interface for the application layer. SqlStore bundles
them over a single AsyncSession.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkflow.domain.models import (
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
    Vehicle,
    VehicleClass,
)
from parkflow.infrastructure.db.models import (
    FineDB,
    ParkingSpotDB,
    PaymentDB,
    ReservationDB,
    SystemConfigDB,
    TicketDB,
    VehicleDB,
)
from parkflow.infrastructure.store import (
    ConfigRepository,
    FineRepository,
    PaymentRepository,
    PaymentTotals,
    ReservationRepository,
    SpotRepository,
    Store,
    TicketRepository,
    VehicleRepository,
)

CENTS = Decimal("0.01")


def _money(value) -> Decimal:
    """Normalize a column or aggregate value to a 2-place Decimal."""
    return Decimal(str(value or 0)).quantize(CENTS)


class SqlSpotRepository(SpotRepository):
    """
    Repository for parking spot operations.

    Occupancy flips are conditional UPDATEs so concurrent sessions can
    never both claim the same spot.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def get(self, spot_id: str) -> ParkingSpot | None:
        db_spot = await self._session.get(ParkingSpotDB, spot_id, populate_existing=True)
        return self._to_domain(db_spot) if db_spot else None

    async def find_many(
        self,
        floor: int | None = None,
        categories: Iterable[SpotCategory] | None = None,
        status: SpotStatus | None = None,
    ) -> list[ParkingSpot]:
        stmt = select(ParkingSpotDB)
        if floor is not None:
            stmt = stmt.where(ParkingSpotDB.floor == floor)
        if categories is not None:
            stmt = stmt.where(ParkingSpotDB.category.in_([c.value for c in categories]))
        if status is not None:
            stmt = stmt.where(ParkingSpotDB.status == status.value)
        stmt = stmt.order_by(ParkingSpotDB.floor, ParkingSpotDB.row, ParkingSpotDB.index)
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        return [self._to_domain(row) for row in result.scalars().all()]

    async def add(self, spot: ParkingSpot) -> ParkingSpot:
        self._session.add(
            ParkingSpotDB(
                spot_id=spot.spot_id,
                floor=spot.floor,
                row=spot.row,
                index=spot.index,
                category=spot.category.value,
                hourly_rate=_money(spot.hourly_rate),
                status=spot.status.value,
                occupant_plate=spot.occupant_plate,
            )
        )
        await self._session.flush()
        return spot

    async def update_category(
        self, spot_id: str, category: SpotCategory, hourly_rate: Decimal
    ) -> bool:
        stmt = (
            update(ParkingSpotDB)
            .where(
                ParkingSpotDB.spot_id == spot_id,
                ParkingSpotDB.status == SpotStatus.AVAILABLE.value,
            )
            .values(category=category.value, hourly_rate=_money(hourly_rate))
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def mark_occupied(self, spot_id: str, plate: str) -> bool:
        """
        Occupy a spot only if it is currently available.

        Args:
            spot_id: Spot to occupy.
            plate: Occupant plate.

        Returns:
            bool: True if this call flipped the spot.
        """
        stmt = (
            update(ParkingSpotDB)
            .where(
                ParkingSpotDB.spot_id == spot_id,
                ParkingSpotDB.status == SpotStatus.AVAILABLE.value,
            )
            .values(status=SpotStatus.OCCUPIED.value, occupant_plate=plate)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def mark_available(self, spot_id: str) -> bool:
        stmt = (
            update(ParkingSpotDB)
            .where(
                ParkingSpotDB.spot_id == spot_id,
                ParkingSpotDB.status == SpotStatus.OCCUPIED.value,
            )
            .values(status=SpotStatus.AVAILABLE.value, occupant_plate=None)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(ParkingSpotDB))
        return result.scalar_one()

    def _to_domain(self, db_spot: ParkingSpotDB) -> ParkingSpot:
        """Convert database model to domain model."""
        return ParkingSpot(
            spot_id=db_spot.spot_id,
            floor=db_spot.floor,
            row=db_spot.row,
            index=db_spot.index,
            category=SpotCategory(db_spot.category),
            hourly_rate=_money(db_spot.hourly_rate),
            status=SpotStatus(db_spot.status),
            occupant_plate=db_spot.occupant_plate,
        )


class SqlVehicleRepository(VehicleRepository):
    """Repository for vehicles and their carried balance."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, plate: str) -> Vehicle | None:
        db_vehicle = await self._session.get(VehicleDB, plate, populate_existing=True)
        return self._to_domain(db_vehicle) if db_vehicle else None

    async def add(self, vehicle: Vehicle) -> Vehicle:
        self._session.add(
            VehicleDB(
                plate=vehicle.plate,
                vehicle_class=vehicle.vehicle_class.value,
                balance=_money(vehicle.balance),
                registered_at=vehicle.registered_at,
            )
        )
        await self._session.flush()
        return vehicle

    async def update_balance(self, plate: str, balance: Decimal) -> bool:
        stmt = update(VehicleDB).where(VehicleDB.plate == plate).values(balance=_money(balance))
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    def _to_domain(self, db_vehicle: VehicleDB) -> Vehicle:
        """Convert database model to domain model."""
        return Vehicle(
            plate=db_vehicle.plate,
            vehicle_class=VehicleClass(db_vehicle.vehicle_class),
            balance=_money(db_vehicle.balance),
            registered_at=db_vehicle.registered_at,
        )


class SqlTicketRepository(TicketRepository):
    """Repository for parking tickets."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, ticket_id: str) -> Ticket | None:
        db_ticket = await self._session.get(TicketDB, ticket_id, populate_existing=True)
        return self._to_domain(db_ticket) if db_ticket else None

    async def open_for_plate(self, plate: str) -> Ticket | None:
        stmt = (
            select(TicketDB)
            .where(TicketDB.plate == plate, TicketDB.exit_time.is_(None))
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        db_ticket = result.scalars().first()
        return self._to_domain(db_ticket) if db_ticket else None

    async def list_open(self) -> list[Ticket]:
        stmt = (
            select(TicketDB)
            .where(TicketDB.exit_time.is_(None))
            .order_by(TicketDB.entry_time)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def add(self, ticket: Ticket) -> Ticket:
        self._session.add(
            TicketDB(
                ticket_id=ticket.ticket_id,
                plate=ticket.plate,
                spot_id=ticket.spot_id,
                entry_time=ticket.entry_time,
                exit_time=ticket.exit_time,
                fine_scheme=ticket.fine_scheme.value,
                reservation_id=ticket.reservation_id,
            )
        )
        await self._session.flush()
        return ticket

    async def close(self, ticket_id: str, exit_time: datetime) -> bool:
        stmt = (
            update(TicketDB)
            .where(TicketDB.ticket_id == ticket_id, TicketDB.exit_time.is_(None))
            .values(exit_time=exit_time)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def count_open(self) -> int:
        stmt = select(func.count()).select_from(TicketDB).where(TicketDB.exit_time.is_(None))
        result = await self._session.execute(stmt)
        return result.scalar_one()

    def _to_domain(self, db_ticket: TicketDB) -> Ticket:
        """Convert database model to domain model."""
        return Ticket(
            ticket_id=db_ticket.ticket_id,
            plate=db_ticket.plate,
            spot_id=db_ticket.spot_id,
            entry_time=db_ticket.entry_time,
            exit_time=db_ticket.exit_time,
            fine_scheme=FineScheme(db_ticket.fine_scheme),
            reservation_id=db_ticket.reservation_id,
        )


class SqlReservationRepository(ReservationRepository):
    """Repository for reserved-spot claims."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, reservation_id: int) -> Reservation | None:
        db_res = await self._session.get(ReservationDB, reservation_id, populate_existing=True)
        return self._to_domain(db_res) if db_res else None

    async def active_for_spot(self, spot_id: str) -> Reservation | None:
        stmt = (
            select(ReservationDB)
            .where(ReservationDB.spot_id == spot_id, ReservationDB.is_active == True)
            .order_by(ReservationDB.reserved_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        db_res = result.scalars().first()
        return self._to_domain(db_res) if db_res else None

    async def list_active(self) -> list[Reservation]:
        stmt = (
            select(ReservationDB)
            .where(ReservationDB.is_active == True)
            .order_by(ReservationDB.reserved_at, ReservationDB.id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def history(self, spot_id: str) -> list[Reservation]:
        stmt = (
            select(ReservationDB)
            .where(ReservationDB.spot_id == spot_id)
            .order_by(ReservationDB.reserved_at.desc(), ReservationDB.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def add(self, reservation: Reservation) -> Reservation:
        db_res = ReservationDB(
            spot_id=reservation.spot_id,
            plate=reservation.plate,
            is_active=reservation.is_active,
            reserved_at=reservation.reserved_at,
        )
        self._session.add(db_res)
        await self._session.flush()

        reservation.id = db_res.id
        return reservation

    async def update(self, reservation: Reservation) -> None:
        stmt = (
            update(ReservationDB)
            .where(ReservationDB.id == reservation.id)
            .values(plate=reservation.plate, is_active=reservation.is_active)
        )
        await self._session.execute(stmt)

    def _to_domain(self, db_res: ReservationDB) -> Reservation:
        """Convert database model to domain model."""
        return Reservation(
            id=db_res.id,
            spot_id=db_res.spot_id,
            plate=db_res.plate,
            is_active=db_res.is_active,
            reserved_at=db_res.reserved_at,
        )


class SqlFineRepository(FineRepository):
    """
    Repository for fines.

    Unpaid lists are ordered oldest first by created_at, then id.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, fine_id: int) -> Fine | None:
        db_fine = await self._session.get(FineDB, fine_id, populate_existing=True)
        return self._to_domain(db_fine) if db_fine else None

    async def for_ticket(self, ticket_id: str, kind: FineKind) -> Fine | None:
        stmt = (
            select(FineDB)
            .where(FineDB.ticket_id == ticket_id, FineDB.kind == kind.value)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        db_fine = result.scalar_one_or_none()
        return self._to_domain(db_fine) if db_fine else None

    async def list_unpaid(self, plate: str | None = None) -> list[Fine]:
        stmt = select(FineDB).where(FineDB.is_paid == False)
        if plate is not None:
            stmt = stmt.where(FineDB.plate == plate)
        stmt = stmt.order_by(FineDB.created_at, FineDB.id).execution_options(
            populate_existing=True
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def add(self, fine: Fine) -> Fine:
        db_fine = FineDB(
            plate=fine.plate,
            ticket_id=fine.ticket_id,
            kind=fine.kind.value,
            amount=_money(fine.amount),
            scheme=fine.scheme.value,
            is_paid=fine.is_paid,
            payment_id=fine.payment_id,
            created_at=fine.created_at,
        )
        self._session.add(db_fine)
        await self._session.flush()

        fine.id = db_fine.id
        return fine

    async def update(self, fine: Fine) -> None:
        stmt = (
            update(FineDB)
            .where(FineDB.id == fine.id)
            .values(amount=_money(fine.amount), scheme=fine.scheme.value)
        )
        await self._session.execute(stmt)

    async def remove_unpaid(self, fine_id: int) -> bool:
        stmt = delete(FineDB).where(FineDB.id == fine_id, FineDB.is_paid == False)
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_paid(self, fine_ids: Sequence[int], payment_id: int) -> int:
        if not fine_ids:
            return 0
        stmt = (
            update(FineDB)
            .where(FineDB.id.in_(list(fine_ids)), FineDB.is_paid == False)
            .values(is_paid=True, payment_id=payment_id)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def total_unpaid(self, plate: str | None = None) -> Decimal:
        stmt = select(func.coalesce(func.sum(FineDB.amount), 0)).where(FineDB.is_paid == False)
        if plate is not None:
            stmt = stmt.where(FineDB.plate == plate)
        result = await self._session.execute(stmt)
        return _money(result.scalar_one())

    def _to_domain(self, db_fine: FineDB) -> Fine:
        """Convert database model to domain model."""
        return Fine(
            id=db_fine.id,
            plate=db_fine.plate,
            ticket_id=db_fine.ticket_id,
            kind=FineKind(db_fine.kind),
            amount=_money(db_fine.amount),
            scheme=FineScheme(db_fine.scheme),
            is_paid=db_fine.is_paid,
            payment_id=db_fine.payment_id,
            created_at=db_fine.created_at,
        )


class SqlPaymentRepository(PaymentRepository):
    """Repository for exit payments."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, payment_id: int) -> Payment | None:
        db_payment = await self._session.get(PaymentDB, payment_id)
        if db_payment is None:
            return None
        return await self._to_domain(db_payment)

    async def for_ticket(self, ticket_id: str) -> list[Payment]:
        stmt = select(PaymentDB).where(PaymentDB.ticket_id == ticket_id).order_by(PaymentDB.id)
        result = await self._session.execute(stmt)
        return [await self._to_domain(row) for row in result.scalars().all()]

    async def add(self, payment: Payment) -> Payment:
        db_payment = PaymentDB(
            ticket_id=payment.ticket_id,
            parking_fee=_money(payment.parking_fee),
            fine_amount=_money(payment.fine_amount),
            total=_money(payment.total),
            method=payment.method.value,
            paid_at=payment.paid_at,
        )
        self._session.add(db_payment)
        await self._session.flush()

        return Payment(
            id=db_payment.id,
            ticket_id=payment.ticket_id,
            parking_fee=payment.parking_fee,
            fine_amount=payment.fine_amount,
            method=payment.method,
            paid_at=payment.paid_at,
            paid_fine_ids=payment.paid_fine_ids,
        )

    async def totals(self) -> PaymentTotals:
        stmt = select(
            func.coalesce(func.sum(PaymentDB.parking_fee), 0),
            func.coalesce(func.sum(PaymentDB.fine_amount), 0),
            func.count(PaymentDB.id),
        )
        parking, fines, count = (await self._session.execute(stmt)).one()
        return PaymentTotals(parking_total=_money(parking), fine_total=_money(fines), count=count)

    async def _to_domain(self, db_payment: PaymentDB) -> Payment:
        """Convert database model to domain model, loading the fines it paid."""
        stmt = select(FineDB.id).where(FineDB.payment_id == db_payment.id).order_by(FineDB.id)
        fine_ids = (await self._session.execute(stmt)).scalars().all()
        return Payment(
            id=db_payment.id,
            ticket_id=db_payment.ticket_id,
            parking_fee=_money(db_payment.parking_fee),
            fine_amount=_money(db_payment.fine_amount),
            method=PaymentMethod(db_payment.method),
            paid_at=db_payment.paid_at,
            paid_fine_ids=tuple(fine_ids),
        )


class SqlConfigRepository(ConfigRepository):
    """Repository for runtime facility settings."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, key: str) -> str | None:
        db_entry = await self._session.get(SystemConfigDB, key, populate_existing=True)
        return db_entry.value if db_entry else None

    async def set(self, key: str, value: str) -> None:
        db_entry = await self._session.get(SystemConfigDB, key)
        if db_entry is None:
            self._session.add(SystemConfigDB(key=key, value=value))
        else:
            db_entry.value = value
        await self._session.flush()


class SqlStore(Store):
    """
    Store backed by one AsyncSession.

    Example:
        async with session_factory() as session:
            store = SqlStore(session)
            spot = await store.spots.get("F1-R1-S1")
            await store.commit()
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize store with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session
        self.spots = SqlSpotRepository(session)
        self.vehicles = SqlVehicleRepository(session)
        self.tickets = SqlTicketRepository(session)
        self.reservations = SqlReservationRepository(session)
        self.fines = SqlFineRepository(session)
        self.payments = SqlPaymentRepository(session)
        self.config = SqlConfigRepository(session)

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
