"""Realtime notification hub.

Keeps the open websocket sessions of every connected user and pushes
booking events to them. Delivery is best effort and at most once: an
event for a user without an open session is dropped, and a session whose
send fails is removed. Callers never see a delivery error.
"""

import asyncio
import logging
from uuid import UUID

from fastapi import WebSocket

from app.config import settings
from app.schemas.notification import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationService:
    """Process-wide registry of websocket sessions keyed by user."""

    def __init__(self, send_timeout: float | None = None) -> None:
        self._sessions: dict[UUID, set[WebSocket]] = {}
        self._pending: set[asyncio.Task] = set()
        self._send_timeout = send_timeout or settings.notification_send_timeout_seconds
        self._sent_count = 0
        self._dropped_count = 0
        self._error_count = 0

    async def connect(self, user_id: UUID, websocket: WebSocket) -> None:
        """Accept a websocket and register it for ``user_id``."""
        await websocket.accept()
        self._sessions.setdefault(user_id, set()).add(websocket)
        logger.debug(f"Notification session opened for user {user_id}")

    def disconnect(self, user_id: UUID, websocket: WebSocket) -> None:
        """Forget a websocket. Unknown sessions are ignored."""
        sessions = self._sessions.get(user_id)
        if not sessions:
            return
        sessions.discard(websocket)
        if not sessions:
            del self._sessions[user_id]
        logger.debug(f"Notification session closed for user {user_id}")

    def is_connected(self, user_id: UUID) -> bool:
        return bool(self._sessions.get(user_id))

    def session_count(self, user_id: UUID | None = None) -> int:
        if user_id is not None:
            return len(self._sessions.get(user_id, ()))
        return sum(len(sessions) for sessions in self._sessions.values())

    def get_stats(self) -> dict[str, int]:
        """Get delivery statistics."""
        return {
            "users": len(self._sessions),
            "sessions": self.session_count(),
            "sent": self._sent_count,
            "dropped": self._dropped_count,
            "errors": self._error_count,
        }

    async def notify(self, user_id: UUID, event: NotificationEvent) -> int:
        """Push ``event`` to every open session of ``user_id``.

        Args:
            user_id: Recipient
            event: Event payload

        Returns:
            Number of sessions the event reached (0 if the user is offline)
        """
        sessions = list(self._sessions.get(user_id, ()))
        if not sessions:
            self._dropped_count += 1
            logger.debug(f"No open session for user {user_id}, dropping {event.event}")
            return 0

        payload = event.model_dump(mode="json")
        delivered = 0
        for websocket in sessions:
            try:
                await asyncio.wait_for(websocket.send_json(payload), timeout=self._send_timeout)
                delivered += 1
            except Exception as e:
                self._error_count += 1
                logger.warning(
                    f"Failed to push {event.event} to user {user_id}, closing session: {e!r}"
                )
                self.disconnect(user_id, websocket)

        self._sent_count += delivered
        return delivered

    def dispatch(self, user_id: UUID, event: NotificationEvent) -> asyncio.Task:
        """Push ``event`` without waiting for the sockets.

        The task is kept until it finishes so it is not garbage collected
        mid-send; :meth:`drain` waits for every task still in flight.
        """
        task = asyncio.create_task(self.notify(user_id, event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for dispatched events still being sent."""
        if not self._pending:
            return
        _, pending = await asyncio.wait(list(self._pending), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} notification(s) still in flight after {timeout}s")

    async def close_all(self) -> None:
        """Close every open session (application shutdown)."""
        await self.drain(timeout=self._send_timeout)
        sessions = [
            (user_id, websocket)
            for user_id, user_sessions in self._sessions.items()
            for websocket in user_sessions
        ]
        self._sessions.clear()
        for user_id, websocket in sessions:
            try:
                await websocket.close(code=1001)
            except Exception as e:
                logger.debug(f"Error closing session for user {user_id}: {e!r}")


# Singleton instance
notification_service = NotificationService()
