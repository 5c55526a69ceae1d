"""Background tasks for booking expiry and ledger recovery."""

import asyncio
import logging

from app.config import settings
from app.database import get_db_context
from app.services.booking_service import booking_service
from app.services.expiry_service import expiry_service

logger = logging.getLogger(__name__)

# Set to stop the expiry scheduler; created by the running loop
_stop_expiry: asyncio.Event | None = None


async def run_expiry_sweep() -> None:
    """Run one sweep, logging instead of raising."""
    try:
        await expiry_service.run_sweep()
    except Exception as e:
        logger.error(f"Expiry sweep failed: {e}")


async def start_expiry_scheduler(interval: float | None = None) -> None:
    """Background task that sweeps expired bookings every interval."""
    global _stop_expiry
    interval = interval or settings.booking_sweep_interval_seconds
    stop = _stop_expiry = asyncio.Event()

    logger.info(f"Booking expiry scheduler started (every {interval}s)")

    while not stop.is_set():
        await run_expiry_sweep()

        # Wait for next interval, waking early on stop
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue

    logger.info("Booking expiry scheduler stopped")


def stop_expiry_scheduler() -> None:
    """Signal the expiry scheduler to stop."""
    if _stop_expiry is not None:
        _stop_expiry.set()


async def run_startup_restore() -> int:
    """Rebuild the capacity ledger from the database on application startup."""
    logger.info("Restoring capacity holds from persisted bookings")
    async with get_db_context() as db:
        return await booking_service.restore_holds(db)
