"""
Read side of the slot engine: rebuild a venue's calendar from its aggregate.

Nothing here writes. The aggregate read may be slightly stale, which is fine
for display; booking decisions are re-validated by the writer inside a
transaction.
"""
from collections import Counter
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, TypeVar

from app.schemas.slots import (
    ReconstructedSlot,
    SlotKey,
    SlotRecord,
    SlotStatus,
    VenueSlots,
)
from app.services.slot_store import SlotStore
from app.utils.timeslots import (
    end_time_of,
    generate_time_slots,
    is_past,
    iter_dates,
    weekday_index,
)

R = TypeVar("R", bound=SlotRecord)


def _index(records: Iterable[R]) -> Dict[SlotKey, R]:
    """Map (date, startTime) -> first record for that key."""
    index: Dict[SlotKey, R] = {}
    for record in records:
        index.setdefault(record.key, record)
    return index


def reconstruct_from_aggregate(
    aggregate: VenueSlots,
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None,
) -> List[ReconstructedSlot]:
    """
    Derive every bookable slot in [start_date, end_date] with its status.

    Days outside `daysOfWeek` and slots that already started are left out.
    Status priority: BLOCKED > BOOKED > HELD (unexpired) > RESERVED > AVAILABLE.
    """
    now = now or datetime.now(timezone.utc)
    config = aggregate.config

    blocked = _index(aggregate.blocked)
    bookings = _index(aggregate.bookings)
    held = _index(aggregate.held)
    reserved = _index(aggregate.reserved)

    grid = generate_time_slots(config.start_time, config.end_time, config.slot_duration_minutes)
    open_days = set(config.days_of_week)

    slots: List[ReconstructedSlot] = []
    for day in iter_dates(start_date, end_date):
        if weekday_index(day) not in open_days:
            continue
        date_str = day.isoformat()

        for start_time in grid:
            if is_past(day, start_time, now, config.timezone):
                continue

            key = (date_str, start_time)
            slot = ReconstructedSlot(
                date=date_str,
                start_time=start_time,
                end_time=end_time_of(start_time, config.slot_duration_minutes),
                status=SlotStatus.AVAILABLE,
            )

            hold = held.get(key)
            if key in blocked:
                slot.status = SlotStatus.BLOCKED
                slot.reason = blocked[key].reason
            elif key in bookings:
                booked = bookings[key]
                slot.status = SlotStatus.BOOKED
                slot.booking_type = booked.booking_type
                slot.booking_id = booked.booking_id
                slot.customer_name = booked.customer_name
                slot.customer_phone = booked.customer_phone
                slot.user_id = booked.user_id
            elif hold is not None and hold.is_live(now):
                slot.status = SlotStatus.HELD
                slot.user_id = hold.user_id
                slot.booking_id = hold.booking_id
                slot.hold_expires_at = hold.hold_expires_at
            elif key in reserved:
                slot.status = SlotStatus.RESERVED
                slot.note = reserved[key].note

            slots.append(slot)

    return slots


def reconstruct_slots(
    store: SlotStore,
    venue_id: str,
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None,
) -> List[ReconstructedSlot]:
    """Reconstructed calendar for a venue; empty if it has no slot document yet."""
    aggregate = store.read(venue_id)
    if aggregate is None:
        return []
    return reconstruct_from_aggregate(aggregate, start_date, end_date, now)


def get_slot_status(
    store: SlotStore,
    venue_id: str,
    slot_date: date,
    start_time: str,
    now: Optional[datetime] = None,
) -> Optional[ReconstructedSlot]:
    """A single cell, or None if it is off-grid, on a closed day, or already past."""
    for slot in reconstruct_slots(store, venue_id, slot_date, slot_date, now):
        if slot.start_time == start_time:
            return slot
    return None


def summarize_slots(slots: Iterable[ReconstructedSlot]) -> Dict[str, int]:
    """Per-status counts; every status is present, zero if unused."""
    counts = Counter(slot.status.value for slot in slots)
    return {status.value: counts.get(status.value, 0) for status in SlotStatus}
