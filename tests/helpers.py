"""Test doubles and time helpers shared across the suite."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from fastapi import WebSocketDisconnect

from app.domain.capacity_ledger import TimeWindow
from app.gateways.base import CheckoutResult, GatewayType, PaymentGateway, PaymentResult

NOW = datetime(2026, 11, 2, 8, 0, tzinfo=UTC)


def window(start_hour: int, end_hour: int, day: int = 3) -> TimeWindow:
    """Window on 2026-11-``day`` between two whole hours (UTC)."""
    base = datetime(2026, 11, day, tzinfo=UTC)
    return TimeWindow(base + timedelta(hours=start_hour), base + timedelta(hours=end_hour))


class FakeWebSocket:
    """Records what the notification hub sends."""

    def __init__(self, fail: bool = False, delay: float | None = None, messages=()):
        self.fail = fail
        self.delay = delay
        self.accepted = False
        self.closed_code: int | None = None
        self.sent: list[dict] = []
        self._messages = list(messages)
        self.on_receive = None

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("connection reset by peer")
        self.sent.append(data)

    async def receive_text(self) -> str:
        if self.on_receive:
            self.on_receive()
        if not self._messages:
            raise WebSocketDisconnect(code=1000)
        return self._messages.pop(0)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_code = code


class FakeStripeGateway(PaymentGateway):
    """Stripe stand-in with scripted responses."""

    def __init__(self, paid: bool = True, fail_checkout: bool = False):
        self.paid = paid
        self.fail_checkout = fail_checkout
        self.secret_key = "sk_test_fake"
        self.sessions: list[str] = []

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def create_checkout_session(self, amount, currency, reference_id, description,
                                      success_url, cancel_url, metadata=None) -> CheckoutResult:
        if self.fail_checkout:
            return CheckoutResult(success=False, error_message="card network unavailable")
        session_id = f"cs_test_{len(self.sessions) + 1}_{reference_id[:8]}"
        self.sessions.append(session_id)
        return CheckoutResult(
            success=True,
            payment_ref=session_id,
            checkout_url=f"https://checkout.stripe.test/{session_id}",
        )

    async def verify_payment(self, payment_ref: str) -> PaymentResult:
        if self.paid:
            return PaymentResult(success=True, transaction_id=payment_ref)
        return PaymentResult(success=False, error_message="Checkout session is not paid")

    def verify_webhook(self, payload: bytes, signature: str) -> dict | None:
        return None

