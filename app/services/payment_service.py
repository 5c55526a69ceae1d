"""Checkout session issuing and payment record bookkeeping."""

import logging
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransition, PaymentError
from app.domain.booking_state import PAID, PENDING_PAYMENT
from app.domain.payment_state import assert_payment_transition
from app.models.booking import Booking
from app.models.payment import Payment
from app.services.gateway_service import GatewayService, gateway_service
from app.utils.validators import mask_reference

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for checkout sessions and their payment records."""

    def __init__(self, gateways: GatewayService | None = None) -> None:
        self.gateways = gateways or gateway_service

    async def get_by_ref(self, db: AsyncSession, payment_ref: str) -> Payment | None:
        result = await db.execute(select(Payment).where(Payment.payment_ref == payment_ref))
        return result.scalar_one_or_none()

    async def create_checkout_session(
        self,
        db: AsyncSession,
        booking: Booking,
        now: datetime | None = None,
    ) -> Payment:
        """Issue a checkout session for a booking awaiting payment.

        Reuses the booking's existing session when it already has one.

        Raises:
            InvalidTransition: Booking is not in pending_payment
            PaymentError: Gateway refused to create the session
        """
        now = now or datetime.now(UTC)

        if booking.status != PENDING_PAYMENT:
            raise InvalidTransition(
                booking.status,
                PAID,
                booking_id=str(booking.id),
                detail=f"Booking is {booking.status}, not awaiting payment",
            )

        if booking.payment_ref:
            existing = await self.get_by_ref(db, booking.payment_ref)
            if existing:
                return existing

        gateway = self.gateways.default_gateway
        result = await self.gateways.create_checkout_session(
            gateway_type=gateway,
            amount=booking.amount,
            currency=booking.currency,
            reference_id=str(booking.id),
            description=f"Parking booking {booking.booking_number}",
            metadata={"booking_number": booking.booking_number},
        )
        if not result.success or not result.payment_ref:
            logger.error(
                f"Checkout session creation failed for booking {booking.booking_number}: "
                f"{result.error_message}"
            )
            raise PaymentError(result.error_message or "Could not create checkout session")

        claimed = await db.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.status == PENDING_PAYMENT,
                Booking.payment_ref.is_(None),
            )
            .values(payment_ref=result.payment_ref)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            # Lost the race against another checkout request or a terminal transition
            current = await db.get(Booking, booking.id, populate_existing=True)
            if current and current.status == PENDING_PAYMENT and current.payment_ref:
                existing = await self.get_by_ref(db, current.payment_ref)
                if existing:
                    return existing
            raise InvalidTransition(
                current.status if current else booking.status,
                PAID,
                booking_id=str(booking.id),
                detail="Booking is no longer awaiting payment",
            )

        payment = Payment(
            booking_id=booking.id,
            customer_id=booking.customer_id,
            amount=booking.amount,
            currency=booking.currency,
            gateway=gateway.value,
            payment_ref=result.payment_ref,
            checkout_url=result.checkout_url,
            status="pending",
            created_at=now,
        )
        db.add(payment)
        await db.commit()
        await db.refresh(booking)

        logger.info(
            f"Checkout session {mask_reference(result.payment_ref)} issued for booking "
            f"{booking.booking_number} via {gateway.value}"
        )
        return payment

    async def record_outcome(
        self,
        db: AsyncSession,
        payment_ref: str,
        status: str,
        now: datetime | None = None,
    ) -> Payment | None:
        """Move the payment record for ``payment_ref`` out of pending.

        Runs inside the caller's transaction; does not commit. Recording the
        outcome the record already has is a no-op.
        """
        now = now or datetime.now(UTC)
        result = await db.execute(
            update(Payment)
            .where(Payment.payment_ref == payment_ref, Payment.status == "pending")
            .values(status=status, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        payment = await db.scalar(
            select(Payment)
            .where(Payment.payment_ref == payment_ref)
            .execution_options(populate_existing=True)
        )
        if result.rowcount == 1 or payment is None:
            return payment
        if payment.status != status:
            assert_payment_transition(payment.status, status)
        return payment


# Singleton instance
payment_service = PaymentService()
