"""Payment-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CheckoutSessionCreate(BaseModel):
    """Schema for requesting a checkout session for an approved booking."""

    booking_id: UUID


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    customer_id: UUID
    amount: int
    currency: str
    gateway: str
    payment_ref: str
    checkout_url: str | None
    status: str
    created_at: datetime | None
    completed_at: datetime | None


class PaymentStatusResponse(BaseModel):
    """Schema for the outcome of a payment callback."""

    payment_ref: str
    booking_id: UUID
    booking_status: str
    message: str | None = None
