"""Payment gateway service.

Routes payment operations to the appropriate gateway adapter.
No business logic here - only gateway coordination.
"""

from app.config import settings
from app.gateways.base import (
    CheckoutResult,
    GatewayType,
    PaymentGateway,
    PaymentResult,
)
from app.gateways.manual import ManualGateway
from app.gateways.stripe_gateway import StripeGateway


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_no_live_keys_outside_production(gateway: PaymentGateway) -> None:
    """Block live-mode gateway operations in non-production environments.

    Raises:
        RuntimeError: If a live Stripe key is configured outside production
    """
    if gateway.gateway_type == GatewayType.STRIPE and not _is_production():
        secret_key = getattr(gateway, "secret_key", None) or ""
        if secret_key.startswith("sk_live_"):
            raise RuntimeError(
                f"Cannot execute live {gateway.gateway_type.value} gateway operations "
                f"in {settings.environment} environment. Use a test-mode key."
            )


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self, gateways: dict[GatewayType, PaymentGateway] | None = None):
        self._gateways: dict[GatewayType, PaymentGateway] = dict(gateways or {})

    def _get_gateway(self, gateway_type: str | GatewayType) -> PaymentGateway:
        """Get or create gateway instance."""
        if isinstance(gateway_type, str):
            try:
                gateway_type = GatewayType(gateway_type)
            except ValueError:
                gateway_type = GatewayType.MANUAL

        if gateway_type not in self._gateways:
            if gateway_type == GatewayType.STRIPE:
                self._gateways[gateway_type] = StripeGateway()
            else:
                self._gateways[gateway_type] = ManualGateway()

        return self._gateways[gateway_type]

    @property
    def default_gateway(self) -> GatewayType:
        return GatewayType(settings.payment_gateway)

    async def create_checkout_session(
        self,
        gateway_type: str | GatewayType,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        metadata: dict | None = None,
    ) -> CheckoutResult:
        """Create a checkout session via the specified gateway."""
        gateway = self._get_gateway(gateway_type)
        _assert_no_live_keys_outside_production(gateway)
        return await gateway.create_checkout_session(
            amount=amount,
            currency=currency,
            reference_id=reference_id,
            description=description,
            success_url=settings.checkout_success_url,
            cancel_url=settings.checkout_cancel_url,
            metadata=metadata,
        )

    async def verify_payment(
        self,
        gateway_type: str | GatewayType,
        payment_ref: str,
    ) -> PaymentResult:
        """Verify payment status via gateway."""
        gateway = self._get_gateway(gateway_type)
        return await gateway.verify_payment(payment_ref)

    def verify_webhook(
        self,
        gateway_type: str | GatewayType,
        payload: bytes,
        signature: str,
    ) -> dict | None:
        """Verify webhook from gateway."""
        gateway = self._get_gateway(gateway_type)
        return gateway.verify_webhook(payload, signature)


# Singleton instance
gateway_service = GatewayService()
