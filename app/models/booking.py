"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.database import Base


class Booking(Base):
    """Booking model.

    Only the booking service writes ``status``, and always through a
    conditional update on the expected current status.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_status_hold_expires_at", "status", "hold_expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str] = mapped_column(
        String(24), unique=True, nullable=False, index=True
    )  # PARK-YYYYMMDD-XXXXXX
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    space_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("space_types.id"), nullable=False, index=True
    )
    # Copied from the parking space at creation
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    # Window
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    vehicle_number: Mapped[str | None] = mapped_column(String(20))

    # Pricing (in paise)
    hours: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR")

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending_approval", index=True
    )  # pending_approval, approved, rejected, pending_payment, paid, payment_failed, expired

    # Ledger handle and hold deadline, both fixed at creation
    reservation_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)
    hold_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payment_ref: Mapped[str | None] = mapped_column(String(255), unique=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class BookingTransition(Base):
    """Append-only record of every status change a booking went through."""

    __tablename__ = "booking_transitions"
    __table_args__ = (
        UniqueConstraint("booking_id", "sequence", name="uq_booking_transition_sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Position in the booking's history, starting at 0 for creation
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20))  # None for creation
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # customer, owner, admin, scheduler, gateway
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
