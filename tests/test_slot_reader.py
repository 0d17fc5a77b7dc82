from datetime import date, datetime, timedelta, timezone

from app.schemas.slots import SlotStatus
from app.services.slot_reader import (
    get_slot_status,
    reconstruct_slots,
    summarize_slots,
)
from app.services.slot_writer import (
    block_slot,
    book_slot,
    hold_slot,
    initialize_venue_slots,
    reserve_slot,
)

from tests.conftest import MONDAY, NOW


def _statuses(slots):
    return {(s.date, s.start_time): s.status for s in slots}


def test_weekend_is_empty_for_weekday_venue(store, venue):
    assert reconstruct_slots(store, venue, date(2026, 2, 28), date(2026, 3, 1), now=NOW) == []


def test_monday_has_two_available_slots(store, venue):
    slots = reconstruct_slots(store, venue, date(2026, 3, 2), date(2026, 3, 2), now=NOW)

    assert [(s.start_time, s.end_time, s.status) for s in slots] == [
        ("09:00", "10:00", SlotStatus.AVAILABLE),
        ("10:00", "11:00", SlotStatus.AVAILABLE),
    ]
    assert all(s.date == MONDAY for s in slots)


def test_slots_are_ordered_by_day_then_time(store, venue):
    slots = reconstruct_slots(store, venue, date(2026, 3, 2), date(2026, 3, 4), now=NOW)
    keys = [(s.date, s.start_time) for s in slots]

    assert len(slots) == 6
    assert keys == sorted(keys)


def test_missing_venue_reconstructs_to_nothing(store):
    assert reconstruct_slots(store, "unknown", date(2026, 3, 2), date(2026, 3, 8), now=NOW) == []


def test_started_slots_are_omitted(store, venue):
    mid_morning = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
    slots = reconstruct_slots(store, venue, date(2026, 3, 2), date(2026, 3, 2), now=mid_morning)

    assert [s.start_time for s in slots] == ["10:00"]


def test_block_outranks_reservation(store, venue):
    reserve_slot(store, venue, MONDAY, "09:00", reserved_by="mgr", note="team practice")
    block_slot(store, venue, MONDAY, "09:00", reason="maintenance")

    slot = get_slot_status(store, venue, date(2026, 3, 2), "09:00", now=NOW)
    assert slot.status == SlotStatus.BLOCKED
    assert slot.reason == "maintenance"
    assert slot.note is None


def test_block_outranks_booking(store, venue):
    book_slot(store, venue, MONDAY, "09:00", {"bookingId": "b1", "bookingType": "online"}, now=NOW)
    block_slot(store, venue, MONDAY, "09:00")

    assert get_slot_status(store, venue, date(2026, 3, 2), "09:00", now=NOW).status == SlotStatus.BLOCKED


def test_booked_slot_carries_booking_details(store, venue):
    book_slot(
        store,
        venue,
        MONDAY,
        "10:00",
        {
            "bookingId": "b7",
            "bookingType": "physical",
            "customerName": "Asha",
            "customerPhone": "9800000000",
        },
        now=NOW,
    )

    slot = get_slot_status(store, venue, date(2026, 3, 2), "10:00", now=NOW)
    assert slot.status == SlotStatus.BOOKED
    assert slot.booking_id == "b7"
    assert slot.booking_type == "physical"
    assert slot.customer_name == "Asha"
    assert slot.customer_phone == "9800000000"


def test_live_hold_shows_as_held(store, venue):
    hold_slot(store, venue, MONDAY, "09:00", user_id="u1", booking_id="b1", now=NOW)

    slot = get_slot_status(store, venue, date(2026, 3, 2), "09:00", now=NOW + timedelta(minutes=1))
    assert slot.status == SlotStatus.HELD
    assert slot.user_id == "u1"
    assert slot.hold_expires_at == NOW + timedelta(minutes=5)


def test_expired_hold_falls_through_to_next_state(store, venue):
    hold_slot(store, venue, MONDAY, "09:00", user_id="u1", booking_id="b1", now=NOW)
    hold_slot(store, venue, MONDAY, "10:00", user_id="u1", booking_id="b2", now=NOW)
    reserve_slot(store, venue, MONDAY, "10:00", reserved_by="mgr")

    later = NOW + timedelta(minutes=5)
    statuses = _statuses(reconstruct_slots(store, venue, date(2026, 3, 2), date(2026, 3, 2), now=later))

    assert statuses[(MONDAY, "09:00")] == SlotStatus.AVAILABLE
    assert statuses[(MONDAY, "10:00")] == SlotStatus.RESERVED


def test_live_hold_outranks_reservation(store, venue):
    reserve_slot(store, venue, MONDAY, "09:00", reserved_by="mgr")
    hold_slot(store, venue, MONDAY, "09:00", user_id="u1", booking_id="b1", now=NOW)

    assert get_slot_status(store, venue, date(2026, 3, 2), "09:00", now=NOW).status == SlotStatus.HELD


def test_records_off_the_grid_are_ignored(store, venue):
    block_slot(store, venue, MONDAY, "09:30")

    statuses = _statuses(reconstruct_slots(store, venue, date(2026, 3, 2), date(2026, 3, 2), now=NOW))
    assert set(statuses.values()) == {SlotStatus.AVAILABLE}


def test_slot_status_is_none_off_grid_or_closed(store, venue):
    assert get_slot_status(store, venue, date(2026, 3, 2), "09:30", now=NOW) is None
    assert get_slot_status(store, venue, date(2026, 3, 1), "09:00", now=NOW) is None


def test_reconstruction_honours_venue_timezone(store):
    initialize_venue_slots(
        store,
        "ktm",
        {
            "startTime": "09:00",
            "endTime": "12:00",
            "slotDurationMinutes": 60,
            "daysOfWeek": [1],
            "timezone": "Asia/Kathmandu",
        },
    )
    # 04:30 UTC is 10:15 in Kathmandu
    now = datetime(2026, 3, 2, 4, 30, tzinfo=timezone.utc)
    slots = reconstruct_slots(store, "ktm", date(2026, 3, 2), date(2026, 3, 2), now=now)

    assert [s.start_time for s in slots] == ["11:00"]


def test_summary_counts_every_status(store, venue):
    block_slot(store, venue, MONDAY, "09:00")
    slots = reconstruct_slots(store, venue, date(2026, 3, 2), date(2026, 3, 3), now=NOW)

    assert summarize_slots(slots) == {
        "AVAILABLE": 3,
        "BLOCKED": 1,
        "BOOKED": 0,
        "HELD": 0,
        "RESERVED": 0,
    }
