"""Booking-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.validators import normalize_vehicle_number, validate_vehicle_number


class BookingCreate(BaseModel):
    """Schema for requesting a booking."""

    space_type_id: UUID
    start_at: datetime
    end_at: datetime
    vehicle_number: str | None = Field(None, max_length=20)

    @field_validator("start_at", "end_at")
    @classmethod
    def validate_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("timestamps must include a UTC offset")
        return v

    @field_validator("end_at")
    @classmethod
    def validate_window(cls, v: datetime, info) -> datetime:
        start_at = info.data.get("start_at")
        if start_at and v <= start_at:
            raise ValueError("end_at must be after start_at")
        return v

    @field_validator("vehicle_number")
    @classmethod
    def validate_vehicle(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not validate_vehicle_number(v):
            raise ValueError("Invalid vehicle registration number")
        return normalize_vehicle_number(v)


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_number: str
    customer_id: UUID
    owner_id: UUID
    space_type_id: UUID

    # Window
    start_at: datetime
    end_at: datetime
    vehicle_number: str | None

    # Pricing
    hours: int
    amount: int
    currency: str

    # Status
    status: str
    hold_expires_at: datetime
    payment_ref: str | None

    # Timestamps
    created_at: datetime
    approved_at: datetime | None
    rejected_at: datetime | None
    paid_at: datetime | None
    failed_at: datetime | None
    expired_at: datetime | None


class BookingListResponse(BaseModel):
    """Schema for paginated booking list."""

    items: list[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingTransitionResponse(BaseModel):
    """Schema for one audit row of a booking's history."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    from_status: str | None
    to_status: str
    actor: str
    actor_id: UUID | None
    created_at: datetime


class AvailabilityResponse(BaseModel):
    """Schema for space type availability over a window."""

    space_type_id: UUID
    start_at: datetime
    end_at: datetime
    capacity: int
    held: int
    available: int
