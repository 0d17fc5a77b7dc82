from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from app.core.errors import AlreadyBooked, Conflict, HeldByOther
from app.schemas.slots import BlockedSlot, ReservedSlot
from app.services.slot_store import SlotStore
from app.services.slot_writer import block_slot, book_slot, hold_slot

from tests.conftest import MONDAY, NOW

WORKERS = 8


def _race(calls):
    """Start every call at (roughly) the same moment; collect results or errors."""
    barrier = Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call()
        except Exception as exc:  # collected for assertions
            return exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


def test_concurrent_bookings_produce_exactly_one_winner(store, venue):
    calls = [
        (lambda i=i: book_slot(
            store, venue, MONDAY, "09:00",
            {"bookingId": f"bk-{i}", "bookingType": "online", "userId": f"u{i}"},
            now=NOW,
        ))
        for i in range(WORKERS)
    ]

    results = _race(calls)

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == WORKERS - 1
    assert all(isinstance(f, AlreadyBooked) for f in failures)

    bookings = [b for b in store.read(venue).bookings if b.key == (MONDAY, "09:00")]
    assert len(bookings) == 1


def test_concurrent_holds_produce_exactly_one_holder(store, venue):
    calls = [
        (lambda i=i: hold_slot(store, venue, MONDAY, "10:00", f"u{i}", f"bk-{i}", now=NOW))
        for i in range(WORKERS)
    ]

    results = _race(calls)

    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    assert all(isinstance(r, HeldByOther) for r in results if isinstance(r, Exception))
    assert [h.user_id for h in store.read(venue).held] == [winners[0].user_id]


def test_writes_to_different_keys_all_land(store, venue):
    days = ["2026-03-02", "2026-03-03", "2026-03-04", "2026-03-05"]
    calls = [
        (lambda d=d, t=t: block_slot(store, venue, d, t, reason="maintenance"))
        for d in days
        for t in ("09:00", "10:00")
    ]

    results = _race(calls)

    assert not [r for r in results if isinstance(r, Exception)]
    assert len(store.read(venue).blocked) == len(calls)


def test_lost_race_is_retried_against_fresh_state(session_factory, venue):
    store = SlotStore(session_factory, max_retries=3)
    rival = SlotStore(session_factory)
    attempts = []

    def apply(state):
        attempts.append(len(state.bookings))
        if len(attempts) == 1:
            # Another writer commits between our read and our write
            book_slot(rival, venue, MONDAY, "09:00", {"bookingId": "rival", "bookingType": "online"}, now=NOW)
        if any(b.key == (MONDAY, "09:00") for b in state.bookings):
            raise AlreadyBooked(MONDAY, "09:00")
        state.blocked = state.blocked + [_block_record()]
        return "written"

    with pytest.raises(AlreadyBooked):
        store.atomic_update(venue, apply)

    assert attempts == [0, 1]
    assert [b.booking_id for b in rival.read(venue).bookings] == ["rival"]
    assert rival.read(venue).blocked == []


def test_conflict_after_retries_are_exhausted(session_factory, venue):
    store = SlotStore(session_factory, max_retries=3)
    rival = SlotStore(session_factory)
    attempts = []

    def apply(state):
        attempts.append(1)
        # A different cell changes under us on every attempt
        block_slot(rival, venue, MONDAY, f"{len(attempts):02d}:00")
        state.reserved = state.reserved + [_reserve_record()]
        return None

    with pytest.raises(Conflict) as exc:
        store.atomic_update(venue, apply)

    assert exc.value.attempts == 3
    assert len(attempts) == 3
    assert store.read(venue).reserved == []


def _block_record():
    return BlockedSlot(date=MONDAY, start_time="10:00", blocked_at=NOW)


def _reserve_record():
    return ReservedSlot(date=MONDAY, start_time="10:00", reserved_by="mgr", reserved_at=NOW)
