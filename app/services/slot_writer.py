"""
Write side of the slot engine: every state transition for a
(venue, date, startTime) cell.

    AVAILABLE -> HELD -> BOOKED      (unbook returns to AVAILABLE)
    AVAILABLE <-> BLOCKED
    AVAILABLE <-> RESERVED

Each operation is a small state function run through
SlotStore.atomic_update, so the check and the write happen against the
same snapshot and a lost race is re-validated from fresh state.
"""
import logging
import random
import string
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from app.core.config import settings
from app.core.errors import (
    AlreadyBooked,
    Conflict,
    HeldByOther,
    HoldNotRenewable,
    InvalidConfig,
    NotInitialized,
)
from app.schemas.slots import (
    BlockedSlot,
    BookedSlot,
    BookingData,
    HeldSlot,
    ReservedSlot,
    SlotConfig,
    SlotKey,
    SlotRecord,
    VenueSlots,
)
from app.services.slot_store import SlotStore
from app.utils.timeslots import parse_minutes

logger = logging.getLogger(__name__)

DateLike = Union[date, str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _slot_key(slot_date: DateLike, start_time: str) -> SlotKey:
    """Normalize and sanity-check a cell key."""
    if isinstance(slot_date, date):
        date_str = slot_date.isoformat()
    else:
        date_str = date.fromisoformat(slot_date).isoformat()
    parse_minutes(start_time)
    return (date_str, start_time)


def _without(records: List[SlotRecord], key: SlotKey) -> list:
    return [r for r in records if r.key != key]


def _has(records: List[SlotRecord], key: SlotKey) -> bool:
    return any(r.key == key for r in records)


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(err["msg"] for err in exc.errors())


def _validate_config(config: Union[SlotConfig, Dict[str, Any]]) -> SlotConfig:
    if isinstance(config, SlotConfig):
        return config
    try:
        return SlotConfig.model_validate(config)
    except ValidationError as e:
        raise InvalidConfig(_validation_message(e))


def _config_key_map() -> Dict[str, str]:
    """Every accepted spelling of a config key -> its stored (camelCase) name."""
    keys = {}
    for name, field in SlotConfig.model_fields.items():
        stored = field.alias or to_camel(name)
        keys[name] = stored
        keys[stored] = stored
        choices = getattr(field.validation_alias, "choices", None) or []
        for choice in choices:
            keys[choice] = stored
    return keys


def _generate_physical_booking_id(now: datetime) -> str:
    """Reference for walk-in bookings made at the venue desk."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"physical_{int(now.timestamp() * 1000)}_{suffix}"


# ---------------------------------------------------------------------------
# Aggregate lifecycle
# ---------------------------------------------------------------------------


def initialize_venue_slots(
    store: SlotStore, venue_id: str, config: Union[SlotConfig, Dict[str, Any]]
) -> VenueSlots:
    """Create the venue's slot document in its zero state (no exceptions)."""
    valid = _validate_config(config)
    aggregate = store.create(venue_id, valid)
    logger.info("Initialized slots for venue %s.", venue_id)
    return aggregate


def update_slot_config(store: SlotStore, venue_id: str, partial: Dict[str, Any]) -> SlotConfig:
    """
    Merge `partial` into the venue's configuration.

    The merged config must satisfy the usual invariants, but is not checked
    against existing bookings or blocks: shrinking hours or changing the
    duration can leave exception records that no longer sit on the grid.
    """
    key_map = _config_key_map()
    unknown = sorted(k for k in partial if k not in key_map)
    if unknown:
        raise InvalidConfig(f"Unknown config field(s): {', '.join(unknown)}")
    changes = {key_map[k]: v for k, v in partial.items()}

    def apply(state: VenueSlots) -> SlotConfig:
        merged = state.config.model_dump(by_alias=True)
        merged.update(changes)
        state.config = _validate_config(merged)
        return state.config

    config = store.atomic_update(venue_id, apply)
    logger.info("Updated slot config for venue %s: %s", venue_id, sorted(changes))
    return config


# ---------------------------------------------------------------------------
# Holds
# ---------------------------------------------------------------------------


def hold_slot(
    store: SlotStore,
    venue_id: str,
    slot_date: DateLike,
    start_time: str,
    user_id: str,
    booking_id: str,
    hold_duration_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> HeldSlot:
    """
    Place a checkout hold on a cell.

    Fails AlreadyBooked if booked, HeldByOther if someone else holds it, and
    HoldNotRenewable if the caller's own hold is still live: a hold runs its
    full course or is released, it is never extended.
    """
    key = _slot_key(slot_date, start_time)
    minutes = settings.HOLD_MINUTES if hold_duration_minutes is None else hold_duration_minutes
    if minutes <= 0:
        raise ValueError(f"Hold duration must be positive, got {minutes} minute(s)")

    def apply(state: VenueSlots) -> HeldSlot:
        ts = now or _utcnow()
        if _has(state.bookings, key):
            raise AlreadyBooked(*key)

        for existing in state.held:
            if existing.key == key and existing.is_live(ts):
                if existing.user_id == user_id:
                    raise HoldNotRenewable(*key, holder=existing.user_id)
                raise HeldByOther(*key, holder=existing.user_id)

        hold = HeldSlot(
            date=key[0],
            start_time=key[1],
            user_id=user_id,
            booking_id=booking_id,
            hold_expires_at=ts + timedelta(minutes=minutes),
            created_at=ts,
        )
        state.held = _without(state.held, key) + [hold]
        return hold

    hold = store.atomic_update(venue_id, apply)
    logger.info("Held %s %s at venue %s for user %s until %s.",
                key[0], key[1], venue_id, user_id, hold.hold_expires_at.isoformat())
    return hold


def release_hold(store: SlotStore, venue_id: str, slot_date: DateLike, start_time: str) -> bool:
    """Drop any hold on the cell. Returns False if there was none."""
    key = _slot_key(slot_date, start_time)

    def apply(state: VenueSlots) -> bool:
        before = len(state.held)
        state.held = _without(state.held, key)
        return len(state.held) != before

    return store.atomic_update(venue_id, apply)


def clean_expired_holds(store: SlotStore, venue_id: str, now: Optional[datetime] = None) -> int:
    """Remove every hold whose expiry has passed. Returns how many were removed."""

    def apply(state: VenueSlots) -> int:
        ts = now or _utcnow()
        live = [h for h in state.held if h.is_live(ts)]
        removed = len(state.held) - len(live)
        state.held = live
        return removed

    removed = store.atomic_update(venue_id, apply)
    if removed:
        logger.info("Removed %d expired hold(s) at venue %s.", removed, venue_id)
    return removed


def clean_all_expired_holds(store: SlotStore, now: Optional[datetime] = None) -> int:
    """Sweep every venue. A busy venue is skipped until the next sweep, never the rest."""
    total = 0
    for venue_id in store.venue_ids():
        try:
            total += clean_expired_holds(store, venue_id, now)
        except NotInitialized:
            continue
        except Conflict:
            logger.warning("Skipping hold sweep for busy venue %s this round.", venue_id)
            continue
    return total


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


def book_slot(
    store: SlotStore,
    venue_id: str,
    slot_date: DateLike,
    start_time: str,
    booking_data: Union[BookingData, Dict[str, Any]],
    now: Optional[datetime] = None,
) -> BookedSlot:
    """
    Record a booking for the cell, converting any hold on it.

    An existing booking is the only thing that stops this: a live hold by a
    different user does not. Payment confirmation is the final word, and
    `hold_slot` is the courtesy check callers make before taking payment.
    """
    key = _slot_key(slot_date, start_time)
    data = booking_data if isinstance(booking_data, BookingData) else BookingData.model_validate(booking_data)

    def apply(state: VenueSlots) -> BookedSlot:
        ts = now or _utcnow()
        if _has(state.bookings, key):
            raise AlreadyBooked(*key)

        booking_id = data.booking_id or _generate_physical_booking_id(ts)
        booked = BookedSlot(
            date=key[0],
            start_time=key[1],
            booking_id=booking_id,
            booking_type=data.booking_type,
            status=data.status,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            notes=data.notes,
            user_id=data.user_id,
            created_at=ts,
        )
        state.held = _without(state.held, key)
        state.bookings = state.bookings + [booked]
        return booked

    booked = store.atomic_update(venue_id, apply)
    logger.info("Booked %s %s at venue %s (booking %s, %s).",
                key[0], key[1], venue_id, booked.booking_id, booked.booking_type)
    return booked


def unbook_slot(store: SlotStore, venue_id: str, slot_date: DateLike, start_time: str) -> bool:
    key = _slot_key(slot_date, start_time)

    def apply(state: VenueSlots) -> bool:
        before = len(state.bookings)
        state.bookings = _without(state.bookings, key)
        return len(state.bookings) != before

    removed = store.atomic_update(venue_id, apply)
    if removed:
        logger.info("Unbooked %s %s at venue %s.", key[0], key[1], venue_id)
    return removed


# ---------------------------------------------------------------------------
# Manager blocks & reservations
# ---------------------------------------------------------------------------


def block_slot(
    store: SlotStore,
    venue_id: str,
    slot_date: DateLike,
    start_time: str,
    reason: Optional[str] = None,
    blocked_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BlockedSlot:
    """
    Take a cell out of availability.

    Booked cells are not checked: a block simply outranks the booking when
    the calendar is rebuilt. Callers who care look at the slot status first.
    """
    key = _slot_key(slot_date, start_time)

    def apply(state: VenueSlots) -> BlockedSlot:
        record = BlockedSlot(
            date=key[0],
            start_time=key[1],
            reason=reason,
            blocked_by=blocked_by,
            blocked_at=now or _utcnow(),
        )
        state.blocked = _without(state.blocked, key) + [record]
        return record

    record = store.atomic_update(venue_id, apply)
    logger.info("Blocked %s %s at venue %s.", key[0], key[1], venue_id)
    return record


def unblock_slot(store: SlotStore, venue_id: str, slot_date: DateLike, start_time: str) -> bool:
    key = _slot_key(slot_date, start_time)

    def apply(state: VenueSlots) -> bool:
        before = len(state.blocked)
        state.blocked = _without(state.blocked, key)
        return len(state.blocked) != before

    return store.atomic_update(venue_id, apply)


def reserve_slot(
    store: SlotStore,
    venue_id: str,
    slot_date: DateLike,
    start_time: str,
    reserved_by: str,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReservedSlot:
    key = _slot_key(slot_date, start_time)

    def apply(state: VenueSlots) -> ReservedSlot:
        record = ReservedSlot(
            date=key[0],
            start_time=key[1],
            reserved_by=reserved_by,
            note=note,
            reserved_at=now or _utcnow(),
        )
        state.reserved = _without(state.reserved, key) + [record]
        return record

    record = store.atomic_update(venue_id, apply)
    logger.info("Reserved %s %s at venue %s for %s.", key[0], key[1], venue_id, reserved_by)
    return record


def unreserve_slot(store: SlotStore, venue_id: str, slot_date: DateLike, start_time: str) -> bool:
    key = _slot_key(slot_date, start_time)

    def apply(state: VenueSlots) -> bool:
        before = len(state.reserved)
        state.reserved = _without(state.reserved, key)
        return len(state.reserved) != before

    return store.atomic_update(venue_id, apply)
