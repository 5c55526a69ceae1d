"""Payment endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_customer, get_current_user, get_db
from app.core.exceptions import NotFoundError
from app.models.user import User
from app.schemas.payment import (
    CheckoutSessionCreate,
    PaymentResponse,
    PaymentStatusResponse,
)
from app.services.booking_service import booking_service
from app.services.payment_service import payment_service
from app.services.reconciliation_service import reconciliation_service
from app.utils.validators import mask_reference

router = APIRouter()


@router.post(
    "/checkout-session",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_checkout_session(
    request: CheckoutSessionCreate,
    current_user: Annotated[User, Depends(get_current_customer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PaymentResponse:
    """Get a hosted checkout session for an approved booking.

    Returns the existing session if one was already issued.
    """
    booking = await booking_service.get(db, request.booking_id)
    if booking.customer_id != current_user.id:
        raise NotFoundError("Booking", str(request.booking_id))

    payment = await payment_service.create_checkout_session(db, booking)
    return PaymentResponse.model_validate(payment)


@router.put("/{payment_ref}/success", response_model=PaymentStatusResponse)
async def confirm_payment(
    payment_ref: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PaymentStatusResponse:
    """Confirm a completed checkout.

    Customers land here from the checkout success redirect; admins use it
    to confirm bank transfers and counter payments.
    """
    booking = await reconciliation_service.confirm_checkout(db, payment_ref, current_user)
    return PaymentStatusResponse(
        payment_ref=payment_ref,
        booking_id=booking.id,
        booking_status=booking.status,
        message="Payment confirmed" if booking.status == "paid" else None,
    )


@router.put("/{payment_ref}/failed", response_model=PaymentStatusResponse)
async def fail_payment(
    payment_ref: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PaymentStatusResponse:
    """Report an abandoned or declined checkout."""
    booking = await booking_service.get_by_payment_ref(db, payment_ref)
    if not booking or (
        current_user.role != "admin" and booking.customer_id != current_user.id
    ):
        raise NotFoundError("Booking for payment", mask_reference(payment_ref))

    actor = "admin" if current_user.role == "admin" else "customer"
    booking = await reconciliation_service.on_failure(
        db, payment_ref, actor=actor, actor_id=current_user.id
    )
    return PaymentStatusResponse(
        payment_ref=payment_ref,
        booking_id=booking.id,
        booking_status=booking.status,
    )
