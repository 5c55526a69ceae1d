"""Booking number generation."""

import random
import string
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

BOOKING_NUMBER_CHARS = string.ascii_uppercase + string.digits


async def generate_booking_number(db: AsyncSession, now: datetime | None = None) -> str:
    """Generate a unique, human-readable booking number.

    Args:
        db: Database session for the uniqueness check
        now: Creation time; the date part is taken from it

    Returns:
        str: Booking number like 'PARK-20261102-K9M2QX'
    """
    from app.models.booking import Booking

    date_part = (now or datetime.now(UTC)).strftime("%Y%m%d")
    while True:
        random_part = "".join(random.choices(BOOKING_NUMBER_CHARS, k=6))
        booking_number = f"PARK-{date_part}-{random_part}"

        taken = await db.scalar(select(Booking.id).where(Booking.booking_number == booking_number))
        if taken is None:
            return booking_number
