from __future__ import annotations

import pytest

from app.api.v1.notifications import WS_CLOSE_UNAUTHORIZED, notifications_socket
from app.core.security import create_user_token
from app.services.notification_service import notification_service
from tests.helpers import FakeWebSocket


@pytest.mark.asyncio
async def test_missing_token_closes_with_unauthorized(db) -> None:
    socket = FakeWebSocket()

    await notifications_socket(socket, db, token=None)

    assert socket.accepted
    assert socket.closed_code == WS_CLOSE_UNAUTHORIZED


@pytest.mark.asyncio
async def test_invalid_token_closes_with_unauthorized(db) -> None:
    socket = FakeWebSocket()

    await notifications_socket(socket, db, token="not-a-jwt")

    assert socket.closed_code == WS_CLOSE_UNAUTHORIZED


@pytest.mark.asyncio
async def test_session_registered_until_client_leaves(db, customer) -> None:
    token = create_user_token(str(customer.id), customer.email, customer.role)
    socket = FakeWebSocket(messages=["ping", "hello"])
    seen_connected = []
    socket.on_receive = lambda: seen_connected.append(notification_service.is_connected(customer.id))

    await notifications_socket(socket, db, token=token)

    assert seen_connected == [True, True, True]
    assert socket.sent == [{"event": "pong"}]
    assert socket.closed_code is None
    assert not notification_service.is_connected(customer.id)
