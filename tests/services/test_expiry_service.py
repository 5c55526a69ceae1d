from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.models.booking import Booking
from app.models.payment import Payment
from app.services.booking_service import BookingService
from app.services.expiry_service import ExpiryService
from app.services.notification_service import NotificationService
from tests.helpers import NOW, FakeWebSocket, window

LATER = NOW + timedelta(minutes=11)


@pytest.fixture
def expiry(bookings, session_factory) -> ExpiryService:
    return ExpiryService(bookings=bookings, session_factory=session_factory, batch_size=50)


@pytest.mark.asyncio
async def test_sweep_expires_due_bookings(db, expiry, bookings, ledger, notifications, customer, owner, space_type, instant_space_type) -> None:
    socket = FakeWebSocket()
    await notifications.connect(customer.id, socket)
    requested = await bookings.create(db, customer, space_type.id, window(9, 12), now=NOW)
    awaiting = await bookings.create(db, customer, instant_space_type.id, window(9, 12), now=NOW)
    socket.sent.clear()

    result = await expiry.run_sweep(now=LATER)
    await notifications.drain()

    assert result.examined == 2
    assert result.expired == 2
    assert result.skipped == result.failed == 0
    assert ledger.held(space_type.id) == 0
    assert ledger.held(instant_space_type.id) == 0
    assert sorted(m["event"] for m in socket.sent) == ["booking.expired", "booking.expired"]

    statuses = {
        b.id: b.status
        for b in (await db.execute(select(Booking).execution_options(populate_existing=True))).scalars()
    }
    assert statuses == {requested.id: "expired", awaiting.id: "expired"}
    payment = (await db.execute(select(Payment))).scalar_one()
    assert payment.status == "failed"


@pytest.mark.asyncio
async def test_sweep_leaves_fresh_holds_alone(db, expiry, bookings, ledger, customer, space_type) -> None:
    await bookings.create(db, customer, space_type.id, window(9, 12), now=NOW)

    result = await expiry.run_sweep(now=NOW + timedelta(minutes=5))

    assert result.examined == 0
    assert ledger.held(space_type.id) == 1


@pytest.mark.asyncio
async def test_sweep_ignores_paid_bookings(db, expiry, bookings, ledger, customer, instant_space_type) -> None:
    paid = await bookings.create(db, customer, instant_space_type.id, window(9, 12), now=NOW)
    await bookings.mark_paid(db, paid.payment_ref, now=NOW)

    result = await expiry.run_sweep(now=LATER)

    assert result.examined == 0
    assert ledger.held(instant_space_type.id) == 1


@pytest.mark.asyncio
async def test_booking_that_moved_on_is_skipped(db, expiry, bookings, ledger, customer, owner, space_type, monkeypatch) -> None:
    booking = await bookings.create(db, customer, space_type.id, window(9, 12), now=NOW)
    original_find_due = expiry.find_due

    async def find_then_approve(session, now, exclude=()):
        due = await original_find_due(session, now, exclude)
        # Owner approves between the sweep's read and its write
        await bookings.approve(db, booking.id, owner.id, now=now)
        return due

    monkeypatch.setattr(expiry, "find_due", find_then_approve)

    result = await expiry.run_sweep(now=LATER)

    assert result.examined == 1
    assert result.expired == 0
    assert result.skipped == 1
    assert ledger.held(space_type.id) == 1


@pytest.mark.asyncio
async def test_unexpected_error_counts_as_failed(db, expiry, bookings, customer, space_type, monkeypatch) -> None:
    await bookings.create(db, customer, space_type.id, window(9, 12), now=NOW)

    async def broken_expire(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(bookings, "expire", broken_expire)

    result = await expiry.run_sweep(now=LATER)

    assert result.examined == 1
    assert result.failed == 1


@pytest.mark.asyncio
async def test_database_outage_aborts_sweep(db, expiry, bookings, customer, space_type, monkeypatch) -> None:
    await bookings.create(db, customer, space_type.id, window(9, 12), now=NOW)

    async def unavailable(*args, **kwargs):
        raise OperationalError("UPDATE bookings", {}, Exception("connection refused"))

    monkeypatch.setattr(bookings, "expire", unavailable)

    with pytest.raises(OperationalError):
        await expiry.run_sweep(now=LATER)


@pytest.mark.asyncio
async def test_sweep_retires_ended_reservations(db, expiry, bookings, ledger, customer, instant_space_type) -> None:
    booking = await bookings.create(db, customer, instant_space_type.id, window(9, 10), now=NOW)
    await bookings.mark_paid(db, booking.payment_ref, now=NOW)

    result = await expiry.run_sweep(now=window(9, 10).end + timedelta(minutes=1))

    assert result.retired == 1
    assert ledger.held(instant_space_type.id) == 0


@pytest.mark.asyncio
async def test_backlog_larger_than_batch_clears_in_one_sweep(db, bookings, ledger, session_factory, customer, instant_space_type) -> None:
    for hour in range(3):
        await bookings.create(db, customer, instant_space_type.id, window(hour, hour + 1), now=NOW)
    expiry = ExpiryService(bookings=bookings, session_factory=session_factory, batch_size=2)

    first = await expiry.run_sweep(now=LATER)
    second = await expiry.run_sweep(now=LATER)

    assert (first.examined, first.expired) == (3, 3)
    assert second.examined == 0
    assert ledger.held(instant_space_type.id) == 0


@pytest.mark.asyncio
async def test_failing_bookings_are_tried_once_per_sweep(db, bookings, session_factory, customer, instant_space_type, monkeypatch) -> None:
    for hour in range(3):
        await bookings.create(db, customer, instant_space_type.id, window(hour, hour + 1), now=NOW)
    expiry = ExpiryService(bookings=bookings, session_factory=session_factory, batch_size=2)
    attempts = []

    async def broken_expire(session, booking_id, *args, **kwargs):
        attempts.append(booking_id)
        raise RuntimeError("boom")

    monkeypatch.setattr(bookings, "expire", broken_expire)

    result = await expiry.run_sweep(now=LATER)

    assert result.examined == result.failed == 3
    assert len(set(attempts)) == len(attempts) == 3


@pytest.mark.asyncio
async def test_slow_socket_does_not_hold_up_the_sweep(db, session_factory, ledger, payments, customer, space_type) -> None:
    notifications = NotificationService(send_timeout=2)
    bookings = BookingService(ledger=ledger, notifications=notifications, payments=payments, hold_minutes=10)
    expiry = ExpiryService(bookings=bookings, session_factory=session_factory, batch_size=50)
    await bookings.create(db, customer, space_type.id, window(9, 12), now=NOW)
    socket = FakeWebSocket(delay=10)
    await notifications.connect(customer.id, socket)

    result = await asyncio.wait_for(expiry.run_sweep(now=LATER), timeout=1)

    assert result.expired == 1
    assert ledger.held(space_type.id) == 0
    assert socket.sent == []
    # The stuck send times out on its own and the session is dropped
    await notifications.drain()
    assert not notifications.is_connected(customer.id)
