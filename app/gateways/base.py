"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    MANUAL = "manual"


@dataclass
class CheckoutResult:
    """Result of creating a hosted checkout session."""

    success: bool
    payment_ref: str | None = None
    checkout_url: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class PaymentResult:
    """Result of a payment status lookup."""

    success: bool
    transaction_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
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
        """Create a hosted checkout session.

        Args:
            amount: Amount in smallest currency unit (paise)
            currency: Currency code (INR)
            reference_id: Internal reference (booking id)
            description: Line item shown on the checkout page
            success_url: Redirect after a completed payment
            cancel_url: Redirect after the customer abandons checkout
            metadata: Additional metadata

        Returns:
            CheckoutResult with the session id used as payment reference
        """
        pass

    @abstractmethod
    async def verify_payment(
        self,
        payment_ref: str,
    ) -> PaymentResult:
        """Ask the gateway whether a checkout session has been paid.

        Args:
            payment_ref: Checkout session id

        Returns:
            PaymentResult, ``success`` True only when the session is paid
        """
        pass

    @abstractmethod
    def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> dict | None:
        """Verify webhook signature and parse payload.

        Args:
            payload: Raw request body
            signature: Webhook signature header

        Returns:
            Parsed event dict if valid, None if invalid
        """
        pass
