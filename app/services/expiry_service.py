"""Expiry sweep for bookings whose hold deadline passed."""

import logging
from collections.abc import Callable, Collection
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InvalidTransition
from app.database import get_db_context
from app.domain.booking_state import EXPIRABLE_STATES
from app.models.booking import Booking
from app.services.booking_service import BookingService, booking_service
from app.utils.validators import as_utc

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass
class SweepResult:
    """Counters for one sweep iteration."""

    examined: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0
    retired: int = 0


class ExpiryService:
    """Expires stale holds and retires ended reservations."""

    def __init__(
        self,
        bookings: BookingService | None = None,
        session_factory: SessionFactory | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.bookings = bookings or booking_service
        self.session_factory = session_factory or get_db_context
        self.batch_size = batch_size or settings.booking_sweep_batch_size

    async def find_due(
        self,
        db: AsyncSession,
        now: datetime,
        exclude: Collection[UUID] = (),
    ) -> list[tuple[UUID, str]]:
        """Bookings past their hold deadline, oldest first, with the status seen.

        ``exclude`` holds ids already handled earlier in the same sweep.
        """
        query = select(Booking.id, Booking.status).where(
            Booking.status.in_(EXPIRABLE_STATES),
            Booking.hold_expires_at <= now,
        )
        if exclude:
            query = query.where(Booking.id.notin_(exclude))
        result = await db.execute(
            query
            .order_by(Booking.hold_expires_at)
            .limit(self.batch_size)
        )
        return [(booking_id, status) for booking_id, status in result.all()]

    async def run_sweep(self, now: datetime | None = None) -> SweepResult:
        """Expire every due booking, each in its own transaction.

        Due bookings are read in batches of ``batch_size`` until a batch comes
        back short. A booking that moved on since it was read (approved, paid)
        is skipped. Database unavailability aborts the sweep; the next tick
        retries.
        """
        now = as_utc(now) if now else datetime.now(UTC)
        result = SweepResult()
        seen: set[UUID] = set()

        while True:
            async with self.session_factory() as db:
                due = await self.find_due(db, now, exclude=seen)
            result.examined += len(due)
            seen.update(booking_id for booking_id, _ in due)

            for booking_id, observed_status in due:
                try:
                    async with self.session_factory() as db:
                        await self.bookings.expire(db, booking_id, observed_status, now)
                    result.expired += 1
                except InvalidTransition as e:
                    result.skipped += 1
                    logger.debug(f"Booking {booking_id} not expired: {e.detail}")
                except (OperationalError, InterfaceError):
                    logger.error(f"Database unavailable while expiring booking {booking_id}, aborting sweep")
                    raise
                except Exception:
                    result.failed += 1
                    logger.exception(f"Failed to expire booking {booking_id}")

            if len(due) < self.batch_size:
                break

        result.retired = self.bookings.ledger.retire_ended(now)

        if result.examined or result.retired:
            logger.info(
                f"Expiry sweep: examined={result.examined}, expired={result.expired}, "
                f"skipped={result.skipped}, failed={result.failed}, retired={result.retired}"
            )
        return result


# Singleton instance
expiry_service = ExpiryService()
