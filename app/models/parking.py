"""Parking space listing models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.database import Base


class ParkingSpace(Base):
    """A parking location listed by an owner."""

    __tablename__ = "parking_spaces"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)

    # Bookings skip owner approval and go straight to payment
    instant_booking: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SpaceType(Base):
    """A class of bookable units within a parking space (e.g. four-wheeler)."""

    __tablename__ = "space_types"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_space_type_capacity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    parking_space_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("parking_spaces.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(50), nullable=False)  # two-wheeler, four-wheeler
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Pricing (in paise - smallest currency unit)
    price_per_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR")
