from __future__ import annotations

from datetime import timedelta

import pytest

from app.config import settings
from app.services.gateway_service import gateway_service
from tests.routes.conftest import auth

BOOKINGS = "/api/v1/bookings/"
PAYMENTS = "/api/v1/payments"


async def _approved(client, customer, owner, space_type, start) -> dict:
    created = await client.post(
        BOOKINGS,
        json={
            "space_type_id": str(space_type.id),
            "start_at": start.isoformat(),
            "end_at": (start + timedelta(hours=2)).isoformat(),
        },
        headers=auth(customer),
    )
    approved = await client.put(f"{BOOKINGS}{created.json()['id']}/approve", headers=auth(owner))
    return approved.json()


@pytest.mark.asyncio
async def test_checkout_session_is_reused(client, customer, owner, space_type, tomorrow) -> None:
    booking = await _approved(client, customer, owner, space_type, tomorrow)

    response = await client.post(
        f"{PAYMENTS}/checkout-session", json={"booking_id": booking["id"]}, headers=auth(customer)
    )

    assert response.status_code == 201
    assert response.json()["payment_ref"] == booking["payment_ref"]
    assert response.json()["status"] == "pending"
    assert response.json()["amount"] == 10000


@pytest.mark.asyncio
async def test_checkout_for_someone_elses_booking_is_404(client, customer, other_customer, owner, space_type, tomorrow) -> None:
    booking = await _approved(client, customer, owner, space_type, tomorrow)

    response = await client.post(
        f"{PAYMENTS}/checkout-session", json={"booking_id": booking["id"]}, headers=auth(other_customer)
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_checkout_before_approval_is_invalid_transition(client, customer, space_type, tomorrow) -> None:
    created = await client.post(
        BOOKINGS,
        json={
            "space_type_id": str(space_type.id),
            "start_at": tomorrow.isoformat(),
            "end_at": (tomorrow + timedelta(hours=2)).isoformat(),
        },
        headers=auth(customer),
    )

    response = await client.post(
        f"{PAYMENTS}/checkout-session", json={"booking_id": created.json()["id"]}, headers=auth(customer)
    )

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_admin_confirms_manual_payment(client, customer, owner, admin, space_type, tomorrow) -> None:
    booking = await _approved(client, customer, owner, space_type, tomorrow)

    self_confirm = await client.put(f"{PAYMENTS}/{booking['payment_ref']}/success", headers=auth(customer))
    confirmed = await client.put(f"{PAYMENTS}/{booking['payment_ref']}/success", headers=auth(admin))
    repeated = await client.put(f"{PAYMENTS}/{booking['payment_ref']}/success", headers=auth(admin))

    assert self_confirm.status_code == 402
    assert self_confirm.json()["code"] == "payment_error"
    assert confirmed.status_code == 200
    assert confirmed.json()["booking_status"] == "paid"
    assert repeated.json()["booking_status"] == "paid"


@pytest.mark.asyncio
async def test_failed_payment_frees_the_unit(client, customer, other_customer, owner, space_type, tomorrow) -> None:
    booking = await _approved(client, customer, owner, space_type, tomorrow)

    stranger = await client.put(f"{PAYMENTS}/{booking['payment_ref']}/failed", headers=auth(other_customer))
    failed = await client.put(f"{PAYMENTS}/{booking['payment_ref']}/failed", headers=auth(customer))
    retry = await client.post(
        BOOKINGS,
        json={
            "space_type_id": str(space_type.id),
            "start_at": tomorrow.isoformat(),
            "end_at": (tomorrow + timedelta(hours=2)).isoformat(),
        },
        headers=auth(other_customer),
    )

    assert stranger.status_code == 404
    assert failed.json()["booking_status"] == "payment_failed"
    assert retry.status_code == 201


@pytest.mark.asyncio
async def test_stripe_webhook_without_secret_is_unavailable(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)

    response = await client.post("/api/v1/webhooks/stripe", content=b"{}")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_stripe_webhook_with_bad_signature_is_rejected(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test")
    monkeypatch.setattr(gateway_service, "verify_webhook", lambda *args, **kwargs: None)

    response = await client.post(
        "/api/v1/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=bad"}
    )

    assert response.status_code == 400
