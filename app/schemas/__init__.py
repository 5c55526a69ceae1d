"""Pydantic schemas for API validation."""

from app.schemas.booking import (
    AvailabilityResponse,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingTransitionResponse,
)
from app.schemas.notification import NotificationEvent
from app.schemas.payment import (
    CheckoutSessionCreate,
    PaymentResponse,
    PaymentStatusResponse,
)

__all__ = [
    # Booking
    "AvailabilityResponse",
    "BookingCreate",
    "BookingListResponse",
    "BookingResponse",
    "BookingTransitionResponse",
    # Notification
    "NotificationEvent",
    # Payment
    "CheckoutSessionCreate",
    "PaymentResponse",
    "PaymentStatusResponse",
]
