"""
SQLAlchemy ORM models for database tables.

These models define the database schema and provide
persistence for domain entities.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

Money = Numeric(10, 2)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ParkingSpotDB(Base):
    """
    Database model for parking spots.

    Occupancy is changed only through conditional updates on status.
    """

    __tablename__ = "parking_spots"

    spot_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    floor: Mapped[int] = mapped_column(Integer, nullable=False)
    row: Mapped[int] = mapped_column(Integer, nullable=False)
    index: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    hourly_rate: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available")
    occupant_plate: Mapped[str | None] = mapped_column(String(20), nullable=True)

    __table_args__ = (
        Index("ix_spots_position", "floor", "row", "index"),
        Index("ix_spots_status_category", "status", "category"),
    )

    def __repr__(self) -> str:
        return f"<ParkingSpot(id={self.spot_id}, status={self.status})>"


class VehicleDB(Base):
    """Database model for vehicles. Rows are never deleted."""

    __tablename__ = "vehicles"

    plate: Mapped[str] = mapped_column(String(20), primary_key=True)
    vehicle_class: Mapped[str] = mapped_column(String(30), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    registered_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Vehicle(plate={self.plate}, balance={self.balance})>"


class TicketDB(Base):
    """
    Database model for parking tickets.

    exit_time is NULL while the ticket is open.
    """

    __tablename__ = "tickets"

    ticket_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    plate: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("vehicles.plate"),
        nullable=False,
        index=True,
    )
    spot_id: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("parking_spots.spot_id"),
        nullable=False,
    )
    entry_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    exit_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    fine_scheme: Mapped[str] = mapped_column(String(20), nullable=False)
    reservation_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_tickets_plate_open", "plate", "exit_time"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.ticket_id}, plate={self.plate})>"


class ReservationDB(Base):
    """Database model for reserved-spot claims."""

    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    spot_id: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("parking_spots.spot_id"),
        nullable=False,
    )
    plate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reserved_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_reservations_spot_active", "spot_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, spot={self.spot_id}, active={self.is_active})>"


class PaymentDB(Base):
    """Database model for exit payments. Immutable once written."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("tickets.ticket_id"),
        nullable=False,
        index=True,
    )
    parking_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    fine_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, ticket={self.ticket_id}, total={self.total})>"


class FineDB(Base):
    """
    Database model for fines.

    One row per (ticket_id, kind); recomputation updates the row.
    """

    __tablename__ = "fines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plate: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    ticket_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("tickets.ticket_id"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    scheme: Mapped[str] = mapped_column(String(20), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("payments.id"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("ticket_id", "kind", name="uq_fines_ticket_kind"),
        Index("ix_fines_unpaid", "plate", "is_paid", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Fine(id={self.id}, ticket={self.ticket_id}, kind={self.kind})>"


class SystemConfigDB(Base):
    """Key/value facility settings that change at runtime."""

    __tablename__ = "system_config"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(String(100), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
