import re
from datetime import date, datetime, timedelta
from typing import Iterator, List
from zoneinfo import ZoneInfo

_HHMM = re.compile(r"^(\d{2}):(\d{2})$")

MINUTES_PER_DAY = 24 * 60


def parse_minutes(value: str) -> int:
    """Convert an "HH:MM" string to minutes since midnight ("24:00" allowed)."""
    match = _HHMM.match(value or "")
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return hour * 60 + minute


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def generate_time_slots(start_time: str, end_time: str, duration_minutes: int) -> List[str]:
    """
    Return the ordered start times of a day's grid.

    Steps by `duration_minutes` from `start_time`; a start is only emitted if
    the whole slot fits, so a trailing remainder shorter than one slot is
    dropped rather than emitted as a partial slot.

        >>> generate_time_slots("09:00", "11:30", 60)
        ['09:00', '10:00']
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    current = parse_minutes(start_time)
    end = parse_minutes(end_time)

    slots = []
    while current + duration_minutes <= end:
        slots.append(format_minutes(current))
        current += duration_minutes
    return slots


def end_time_of(start_time: str, duration_minutes: int) -> str:
    """End of a slot. Slots never cross midnight; that is a caller error."""
    total = parse_minutes(start_time) + duration_minutes
    if total > MINUTES_PER_DAY:
        raise ValueError(
            f"Slot starting {start_time} lasting {duration_minutes} min crosses midnight"
        )
    return format_minutes(total)


def weekday_index(day: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    """Every calendar day in [start_date, end_date]."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def is_past(slot_date: date, start_time: str, now: datetime, tz: str) -> bool:
    """
    True when the slot has already started.

    Slot dates/times are wall-clock values in the venue's timezone, so `now`
    (timezone-aware) is converted into that zone before comparing.
    """
    local_now = now.astimezone(ZoneInfo(tz)).replace(tzinfo=None)
    minutes = parse_minutes(start_time)
    slot_start = datetime.combine(slot_date, datetime.min.time()) + timedelta(minutes=minutes)
    return slot_start < local_now
