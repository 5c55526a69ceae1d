"""Manual payment gateway adapter for cash and bank transfers."""

from app.gateways.base import (
    CheckoutResult,
    GatewayType,
    PaymentGateway,
    PaymentResult,
)


class ManualGateway(PaymentGateway):
    """Manual payment gateway for pay-at-counter and bank transfers.

    Checkout always succeeds; confirming the payment requires an admin.
    """

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

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
        """Create manual payment request (always succeeds)."""
        payment_ref = f"manual_{reference_id}"
        return CheckoutResult(
            success=True,
            payment_ref=payment_ref,
            checkout_url=success_url.replace("{CHECKOUT_SESSION_ID}", payment_ref),
            raw_response={
                "type": "bank_transfer",
                "status": "pending_verification",
                "amount": amount,
                "currency": currency,
                "instructions": "Pay at the counter or by bank transfer and share the receipt",
            },
        )

    async def verify_payment(
        self,
        payment_ref: str,
    ) -> PaymentResult:
        """Verify manual payment (requires admin verification)."""
        return PaymentResult(
            success=False,
            transaction_id=payment_ref,
            error_message="Manual verification required by admin",
        )

    def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> dict | None:
        """Manual gateway doesn't have webhooks."""
        return None
