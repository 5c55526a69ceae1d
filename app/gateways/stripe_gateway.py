"""Stripe payment gateway adapter."""

import json

from app.config import settings
from app.gateways.base import (
    CheckoutResult,
    GatewayType,
    PaymentGateway,
    PaymentResult,
)


class StripeGateway(PaymentGateway):
    """Stripe Checkout implementation."""

    def __init__(self):
        self.secret_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def create_checkout_session(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict | None = None,
    ) -> CheckoutResult:
        """Create a Stripe Checkout Session."""
        if not self.secret_key:
            return CheckoutResult(
                success=False,
                error_message="Stripe not configured",
            )

        try:
            import stripe

            stripe.api_key = self.secret_key

            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": {"name": description},
                            "unit_amount": amount,
                        },
                        "quantity": 1,
                    }
                ],
                client_reference_id=reference_id,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"reference_id": reference_id, **(metadata or {})},
            )

            return CheckoutResult(
                success=True,
                payment_ref=session.id,
                checkout_url=session.url,
                raw_response={"id": session.id, "status": session.status},
            )

        except Exception as e:
            return CheckoutResult(
                success=False,
                error_message=str(e),
            )

    async def verify_payment(
        self,
        payment_ref: str,
    ) -> PaymentResult:
        """Verify Stripe checkout session payment status."""
        if not self.secret_key:
            return PaymentResult(
                success=False,
                error_message="Stripe not configured",
            )

        try:
            import stripe

            stripe.api_key = self.secret_key

            session = stripe.checkout.Session.retrieve(payment_ref)

            return PaymentResult(
                success=session.payment_status == "paid",
                transaction_id=payment_ref,
                raw_response={"status": session.status, "payment_status": session.payment_status},
            )

        except Exception as e:
            return PaymentResult(
                success=False,
                error_message=str(e),
            )

    def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> dict | None:
        """Verify Stripe webhook signature."""
        if not self.webhook_secret:
            return None

        try:
            import stripe

            stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret,
            )
            return json.loads(payload)

        except Exception:
            return None
