"""Space-type capacity ledger.

Tracks which reservations currently hold a unit of each space type and
refuses a new one when the peak number of overlapping holds would exceed
the space type's capacity. Pure in-memory bookkeeping: callers persist
bookings, the ledger only answers "is there room" and remembers the answer.

Every mutation for one space type runs under that space type's lock, so a
check and the insert that follows it can never interleave with another
booking attempt for the same space type. Locks are per space type;
unrelated space types never wait on each other.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from app.core.exceptions import CapacityExceeded
from app.utils.validators import as_utc

logger = logging.getLogger(__name__)

# How long a released or retired handle is remembered past its window end
TOMBSTONE_GRACE = timedelta(days=1)


class LedgerError(Exception):
    """Ledger bookkeeping error (programming error, not a business rejection)."""


class UnknownSpaceType(LedgerError):
    def __init__(self, space_type_id: uuid.UUID) -> None:
        super().__init__(f"Space type {space_type_id} is not registered in the ledger")
        self.space_type_id = space_type_id


class ReservationReleased(LedgerError):
    def __init__(self, reservation_id: uuid.UUID) -> None:
        super().__init__(f"Reservation {reservation_id} was already released")
        self.reservation_id = reservation_id


class UnknownReservation(LedgerError):
    def __init__(self, reservation_id: uuid.UUID) -> None:
        super().__init__(f"Reservation {reservation_id} is not held")
        self.reservation_id = reservation_id


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)`` in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end <= self.start:
            raise ValueError("Window end must be after its start")

    def overlaps(self, other: TimeWindow) -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class Reservation:
    """Handle for one held unit."""

    id: uuid.UUID
    space_type_id: uuid.UUID
    window: TimeWindow


@dataclass
class _SpaceTypeHolds:
    capacity: int
    lock: threading.Lock = field(default_factory=threading.Lock)
    active: dict[uuid.UUID, Reservation] = field(default_factory=dict)
    # Tombstones: handle id -> window end
    released: dict[uuid.UUID, datetime] = field(default_factory=dict)
    retired: dict[uuid.UUID, datetime] = field(default_factory=dict)

    def peak(self, window: TimeWindow | None = None) -> int:
        """Maximum number of simultaneously held units inside ``window``."""
        if window is None:
            return len(self.active)

        events: list[tuple[datetime, int]] = []
        for reservation in self.active.values():
            if not reservation.window.overlaps(window):
                continue
            events.append((max(reservation.window.start, window.start), 1))
            events.append((min(reservation.window.end, window.end), -1))

        # Ends sort before starts at the same instant (half-open windows)
        events.sort(key=lambda e: (e[0], e[1]))
        current = highest = 0
        for _, delta in events:
            current += delta
            highest = max(highest, current)
        return highest


class CapacityLedger:
    """Per-space-type hold counter with serialized check-and-reserve."""

    def __init__(self) -> None:
        self._space_types: dict[uuid.UUID, _SpaceTypeHolds] = {}
        self._registry_lock = threading.Lock()

    def configure(self, space_type_id: uuid.UUID, capacity: int) -> None:
        """Register a space type or update its capacity.

        Lowering capacity never evicts existing holds; new reservations are
        refused until enough of them end.
        """
        if capacity < 1:
            raise ValueError("Capacity must be a positive integer")
        with self._registry_lock:
            holds = self._space_types.get(space_type_id)
            if holds is None:
                self._space_types[space_type_id] = _SpaceTypeHolds(capacity=capacity)
                return
        with holds.lock:
            holds.capacity = capacity

    def _holds(self, space_type_id: uuid.UUID) -> _SpaceTypeHolds:
        holds = self._space_types.get(space_type_id)
        if holds is None:
            raise UnknownSpaceType(space_type_id)
        return holds

    def try_reserve(
        self,
        space_type_id: uuid.UUID,
        window: TimeWindow,
        reservation_id: uuid.UUID | None = None,
    ) -> Reservation:
        """Hold one unit for ``window`` or raise :class:`CapacityExceeded`."""
        holds = self._holds(space_type_id)
        with holds.lock:
            if holds.peak(window) >= holds.capacity:
                raise CapacityExceeded()
            reservation = Reservation(
                id=reservation_id or uuid.uuid4(),
                space_type_id=space_type_id,
                window=window,
            )
            holds.active[reservation.id] = reservation
            return reservation

    def release(self, space_type_id: uuid.UUID, reservation_id: uuid.UUID) -> None:
        """Give a held unit back.

        Releasing the same handle twice raises :class:`ReservationReleased`
        without touching the counts.
        """
        holds = self._holds(space_type_id)
        with holds.lock:
            if reservation_id in holds.released:
                logger.error(f"Double release of reservation {reservation_id} on space type {space_type_id}")
                raise ReservationReleased(reservation_id)
            if reservation_id in holds.retired:
                holds.released[reservation_id] = holds.retired.pop(reservation_id)
                return
            reservation = holds.active.pop(reservation_id, None)
            if reservation is None:
                raise UnknownReservation(reservation_id)
            holds.released[reservation_id] = reservation.window.end

    def restore(self, reservation: Reservation) -> None:
        """Re-install a persisted hold without a capacity check."""
        holds = self._holds(reservation.space_type_id)
        with holds.lock:
            holds.active[reservation.id] = reservation
            if holds.peak(reservation.window) > holds.capacity:
                logger.warning(
                    f"Restored holds exceed capacity {holds.capacity} on space type "
                    f"{reservation.space_type_id}"
                )

    def held(self, space_type_id: uuid.UUID, window: TimeWindow | None = None) -> int:
        """Peak held units inside ``window``, or all active holds when omitted."""
        holds = self._holds(space_type_id)
        with holds.lock:
            return holds.peak(window)

    def available(self, space_type_id: uuid.UUID, window: TimeWindow) -> int:
        holds = self._holds(space_type_id)
        with holds.lock:
            return max(0, holds.capacity - holds.peak(window))

    def capacity(self, space_type_id: uuid.UUID) -> int:
        return self._holds(space_type_id).capacity

    def retire_ended(self, before: datetime) -> int:
        """Drop holds whose window ended at or before ``before``.

        Retired handles stay releasable exactly once so a late expiry of a
        booking whose window already passed does not trip the double-release
        check. Tombstones of handles whose window ended more than
        ``TOMBSTONE_GRACE`` before ``before`` are forgotten; releasing one of
        those afterwards raises :class:`UnknownReservation`.
        """
        before = as_utc(before)
        horizon = before - TOMBSTONE_GRACE
        retired = 0
        with self._registry_lock:
            all_holds = list(self._space_types.values())
        for holds in all_holds:
            with holds.lock:
                for tombstones in (holds.released, holds.retired):
                    for rid in [rid for rid, end in tombstones.items() if end <= horizon]:
                        del tombstones[rid]
                ended = [r for r in holds.active.values() if r.window.end <= before]
                for reservation in ended:
                    del holds.active[reservation.id]
                    holds.retired[reservation.id] = reservation.window.end
                retired += len(ended)
        return retired

    def tombstones(self, space_type_id: uuid.UUID) -> int:
        """Number of released or retired handles still remembered."""
        holds = self._holds(space_type_id)
        with holds.lock:
            return len(holds.released) + len(holds.retired)
