"""Payment outcome reconciliation.

Turns gateway callbacks, customer confirmations and webhook events into
booking transitions. Outcomes that arrive for a booking which already
reached a terminal state (a late webhook after expiry, a retried callback)
are logged and ignored.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransition, NotFoundError, PaymentError
from app.domain.booking_state import TERMINAL_STATES
from app.models.booking import Booking
from app.models.user import User
from app.services.booking_service import BookingService, booking_service
from app.services.gateway_service import GatewayService, gateway_service
from app.utils.validators import mask_reference

logger = logging.getLogger(__name__)

STRIPE_SUCCESS_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
STRIPE_FAILURE_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class ReconciliationService:
    """Service mapping payment outcomes onto the booking lifecycle."""

    def __init__(
        self,
        bookings: BookingService | None = None,
        gateways: GatewayService | None = None,
    ) -> None:
        self.bookings = bookings or booking_service
        self.gateways = gateways or gateway_service

    async def on_success(
        self,
        db: AsyncSession,
        payment_ref: str,
        now: datetime | None = None,
        actor: str = "gateway",
        actor_id=None,
    ) -> Booking:
        """Payment succeeded for ``payment_ref``."""
        try:
            return await self.bookings.mark_paid(db, payment_ref, now, actor=actor, actor_id=actor_id)
        except InvalidTransition as e:
            return await self._ignore_if_terminal(db, payment_ref, e)

    async def on_failure(
        self,
        db: AsyncSession,
        payment_ref: str,
        now: datetime | None = None,
        actor: str = "gateway",
        actor_id=None,
    ) -> Booking:
        """Payment failed or was abandoned for ``payment_ref``."""
        try:
            return await self.bookings.mark_payment_failed(
                db, payment_ref, now, actor=actor, actor_id=actor_id
            )
        except InvalidTransition as e:
            return await self._ignore_if_terminal(db, payment_ref, e)

    async def confirm_checkout(
        self,
        db: AsyncSession,
        payment_ref: str,
        actor: User,
        now: datetime | None = None,
    ) -> Booking:
        """Confirm a checkout from the success redirect or an admin console.

        Admins confirm directly (bank transfer, pay at counter). Customers
        only succeed if the gateway reports the session as paid.

        Raises:
            NotFoundError: Unknown reference, or not the customer's booking
            PaymentError: Gateway does not report the session as paid
        """
        booking = await self.bookings.get_by_payment_ref(db, payment_ref)
        if not booking:
            raise NotFoundError("Booking for payment", mask_reference(payment_ref))

        if actor.role == "admin":
            return await self.on_success(db, payment_ref, now, actor="admin", actor_id=actor.id)

        if booking.customer_id != actor.id:
            raise NotFoundError("Booking for payment", mask_reference(payment_ref))

        if booking.status in TERMINAL_STATES:
            return booking

        payment = await self.bookings.payments.get_by_ref(db, payment_ref)
        gateway = payment.gateway if payment else self.gateways.default_gateway
        result = await self.gateways.verify_payment(gateway, payment_ref)
        if not result.success:
            raise PaymentError(result.error_message or "Payment has not been completed")

        return await self.on_success(db, payment_ref, now, actor="customer", actor_id=actor.id)

    async def handle_gateway_event(
        self,
        db: AsyncSession,
        event: dict[str, Any],
        now: datetime | None = None,
    ) -> Booking | None:
        """Apply a verified Stripe webhook event.

        Returns:
            The affected booking, or None when the event is not relevant
        """
        event_type = event.get("type")
        session = event.get("data", {}).get("object", {})
        payment_ref = session.get("id")
        if not payment_ref:
            logger.debug(f"Ignoring gateway event without session id: {event_type}")
            return None

        try:
            if event_type in STRIPE_SUCCESS_EVENTS:
                if session.get("payment_status") not in ("paid", "no_payment_required"):
                    # Delayed payment method; the async_payment_* event follows
                    logger.info(f"Checkout {mask_reference(payment_ref)} completed but not yet paid")
                    return None
                return await self.on_success(db, payment_ref, now)
            if event_type in STRIPE_FAILURE_EVENTS:
                return await self.on_failure(db, payment_ref, now)
        except NotFoundError:
            logger.warning(f"Gateway event {event_type} for unknown checkout {mask_reference(payment_ref)}")
            return None

        logger.debug(f"Ignoring gateway event {event_type}")
        return None

    async def _ignore_if_terminal(
        self,
        db: AsyncSession,
        payment_ref: str,
        error: InvalidTransition,
    ) -> Booking:
        if error.current not in TERMINAL_STATES:
            raise error
        logger.info(
            f"Payment outcome for {mask_reference(payment_ref)} arrived after booking "
            f"became {error.current}; nothing to do"
        )
        booking = await self.bookings.get_by_payment_ref(db, payment_ref)
        if not booking:
            raise NotFoundError("Booking for payment", mask_reference(payment_ref))
        return booking


# Singleton instance
reconciliation_service = ReconciliationService()
