"""Realtime notification payloads."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

BOOKING_REQUESTED = "booking.requested"
BOOKING_APPROVED = "booking.approved"
BOOKING_REJECTED = "booking.rejected"
BOOKING_PAID = "booking.paid"
BOOKING_PAYMENT_FAILED = "booking.payment_failed"
BOOKING_EXPIRED = "booking.expired"


class NotificationEvent(BaseModel):
    """Event pushed to a user's open websocket sessions."""

    event: str
    booking_id: UUID
    booking_number: str
    status: str
    space_type_id: UUID
    payment_ref: str | None = None
    occurred_at: datetime

    @classmethod
    def for_booking(cls, event: str, booking, occurred_at: datetime) -> "NotificationEvent":
        return cls(
            event=event,
            booking_id=booking.id,
            booking_number=booking.booking_number,
            status=booking.status,
            space_type_id=booking.space_type_id,
            payment_ref=booking.payment_ref,
            occurred_at=occurred_at,
        )
