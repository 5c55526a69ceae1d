from __future__ import annotations

import random
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from app.core.exceptions import CapacityExceeded
from app.domain.capacity_ledger import (
    CapacityLedger,
    Reservation,
    TOMBSTONE_GRACE,
    ReservationReleased,
    TimeWindow,
    UnknownReservation,
    UnknownSpaceType,
)

BASE = datetime(2026, 11, 3, tzinfo=UTC)


def hours(start: int, end: int) -> TimeWindow:
    return TimeWindow(BASE + timedelta(hours=start), BASE + timedelta(hours=end))


@pytest.fixture
def ledger() -> CapacityLedger:
    return CapacityLedger()


@pytest.fixture
def space_type_id(ledger) -> uuid.UUID:
    space_type_id = uuid.uuid4()
    ledger.configure(space_type_id, 2)
    return space_type_id


def test_window_rejects_empty_or_inverted_range() -> None:
    with pytest.raises(ValueError):
        hours(5, 5)
    with pytest.raises(ValueError):
        hours(6, 5)


def test_window_normalizes_naive_values_to_utc() -> None:
    naive = TimeWindow(datetime(2026, 11, 3, 9), datetime(2026, 11, 3, 10))
    assert naive.start.tzinfo is not None
    assert naive == hours(9, 10)


def test_adjacent_windows_do_not_overlap() -> None:
    assert not hours(9, 10).overlaps(hours(10, 11))
    assert hours(9, 11).overlaps(hours(10, 12))


def test_reserve_until_full_then_refuse(ledger, space_type_id) -> None:
    ledger.try_reserve(space_type_id, hours(9, 12))
    ledger.try_reserve(space_type_id, hours(10, 11))

    with pytest.raises(CapacityExceeded):
        ledger.try_reserve(space_type_id, hours(10, 13))

    assert ledger.held(space_type_id, hours(9, 12)) == 2
    assert ledger.available(space_type_id, hours(10, 11)) == 0


def test_refused_reservation_leaves_ledger_unchanged(ledger, space_type_id) -> None:
    ledger.try_reserve(space_type_id, hours(9, 12))
    ledger.try_reserve(space_type_id, hours(9, 12))

    with pytest.raises(CapacityExceeded):
        ledger.try_reserve(space_type_id, hours(11, 14))

    assert ledger.held(space_type_id) == 2
    assert ledger.available(space_type_id, hours(12, 14)) == 2


def test_peak_counts_only_simultaneous_holds(ledger, space_type_id) -> None:
    # 9-10 and 11-12 never coexist, so a 9-12 window still has one unit free at peak
    ledger.try_reserve(space_type_id, hours(9, 10))
    ledger.try_reserve(space_type_id, hours(11, 12))

    assert ledger.held(space_type_id, hours(9, 12)) == 1
    ledger.try_reserve(space_type_id, hours(9, 12))
    with pytest.raises(CapacityExceeded):
        ledger.try_reserve(space_type_id, hours(9, 10))


def test_release_frees_the_unit(ledger, space_type_id) -> None:
    first = ledger.try_reserve(space_type_id, hours(9, 12))
    ledger.try_reserve(space_type_id, hours(9, 12))

    ledger.release(space_type_id, first.id)

    assert ledger.available(space_type_id, hours(9, 12)) == 1
    ledger.try_reserve(space_type_id, hours(10, 11))


def test_double_release_raises_and_changes_nothing(ledger, space_type_id, caplog) -> None:
    reservation = ledger.try_reserve(space_type_id, hours(9, 12))
    ledger.try_reserve(space_type_id, hours(9, 12))
    ledger.release(space_type_id, reservation.id)

    with pytest.raises(ReservationReleased):
        ledger.release(space_type_id, reservation.id)

    assert ledger.held(space_type_id) == 1
    assert "Double release" in caplog.text


def test_release_of_unknown_handle_raises(ledger, space_type_id) -> None:
    with pytest.raises(UnknownReservation):
        ledger.release(space_type_id, uuid.uuid4())


def test_unregistered_space_type_raises(ledger) -> None:
    with pytest.raises(UnknownSpaceType):
        ledger.try_reserve(uuid.uuid4(), hours(9, 10))


def test_space_types_are_independent(ledger, space_type_id) -> None:
    other = uuid.uuid4()
    ledger.configure(other, 1)
    ledger.try_reserve(space_type_id, hours(9, 10))
    ledger.try_reserve(space_type_id, hours(9, 10))

    ledger.try_reserve(other, hours(9, 10))
    assert ledger.available(other, hours(9, 10)) == 0
    assert ledger.available(space_type_id, hours(10, 11)) == 2


def test_configure_rejects_non_positive_capacity(ledger) -> None:
    with pytest.raises(ValueError):
        ledger.configure(uuid.uuid4(), 0)


def test_lowering_capacity_keeps_existing_holds(ledger, space_type_id) -> None:
    ledger.try_reserve(space_type_id, hours(9, 12))
    ledger.try_reserve(space_type_id, hours(9, 12))

    ledger.configure(space_type_id, 1)

    assert ledger.held(space_type_id, hours(9, 12)) == 2
    assert ledger.available(space_type_id, hours(9, 12)) == 0
    with pytest.raises(CapacityExceeded):
        ledger.try_reserve(space_type_id, hours(9, 10))


def test_restore_skips_capacity_check_but_warns(ledger, space_type_id, caplog) -> None:
    for _ in range(3):
        ledger.restore(Reservation(uuid.uuid4(), space_type_id, hours(9, 10)))

    assert ledger.held(space_type_id, hours(9, 10)) == 3
    assert "exceed capacity" in caplog.text


def test_retire_ended_drops_finished_holds(ledger, space_type_id) -> None:
    ended = ledger.try_reserve(space_type_id, hours(9, 10))
    ledger.try_reserve(space_type_id, hours(12, 13))

    assert ledger.retire_ended(BASE + timedelta(hours=10)) == 1
    assert ledger.held(space_type_id) == 1

    # A late release of a retired handle is accepted once
    ledger.release(space_type_id, ended.id)
    with pytest.raises(ReservationReleased):
        ledger.release(space_type_id, ended.id)


def test_retire_ended_forgets_old_tombstones(ledger, space_type_id) -> None:
    for _ in range(500):
        reservation = ledger.try_reserve(space_type_id, hours(9, 10))
        ledger.release(space_type_id, reservation.id)
    ended = ledger.try_reserve(space_type_id, hours(11, 12))
    ledger.retire_ended(BASE + timedelta(hours=12))
    assert ledger.tombstones(space_type_id) == 501

    # Still inside the grace period: nothing forgotten yet
    ledger.retire_ended(BASE + timedelta(hours=10) + TOMBSTONE_GRACE - timedelta(minutes=1))
    assert ledger.tombstones(space_type_id) == 501

    ledger.retire_ended(BASE + timedelta(days=30))
    assert ledger.tombstones(space_type_id) == 0
    with pytest.raises(UnknownReservation):
        ledger.release(space_type_id, ended.id)


def test_concurrent_reserve_release_never_exceeds_capacity() -> None:
    """Random reserve/release from many threads keeps peak holds within capacity."""
    ledger = CapacityLedger()
    space_type_id = uuid.uuid4()
    capacity = 3
    ledger.configure(space_type_id, capacity)
    whole_day = hours(0, 24)
    violations: list[int] = []
    granted: list[Reservation] = []
    granted_lock = threading.Lock()

    def worker(seed: int) -> None:
        rng = random.Random(seed)
        mine: list[Reservation] = []
        for _ in range(300):
            if mine and rng.random() < 0.4:
                reservation = mine.pop(rng.randrange(len(mine)))
                ledger.release(space_type_id, reservation.id)
            else:
                start = rng.randrange(0, 23)
                end = rng.randrange(start + 1, 25)
                try:
                    reservation = ledger.try_reserve(space_type_id, hours(start, end))
                except CapacityExceeded:
                    pass
                else:
                    mine.append(reservation)
                    with granted_lock:
                        granted.append(reservation)
            peak = ledger.held(space_type_id, whole_day)
            if peak > capacity:
                violations.append(peak)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(worker, range(8)))

    assert violations == []
    assert granted
    assert ledger.held(space_type_id, whole_day) <= capacity
