"""Realtime notification channel."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import authenticate_token, get_db
from app.core.exceptions import AuthenticationError
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter()

# Application-defined close code for a missing or invalid token
WS_CLOSE_UNAUTHORIZED = 4401


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    db: Annotated[AsyncSession, Depends(get_db)],
    token: str | None = Query(default=None),
) -> None:
    """Push booking events to the authenticated user.

    The socket is receive-only for the client apart from ``ping``.
    """
    try:
        if not token:
            raise AuthenticationError("Not authenticated")
        user = await authenticate_token(db, token)
    except AuthenticationError as e:
        await websocket.accept()
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason=e.detail)
        return
    user_id = user.id
    # Do not hold a pooled connection for the lifetime of the socket
    await db.commit()

    await notification_service.connect(user_id, websocket)
    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        notification_service.disconnect(user_id, websocket)
