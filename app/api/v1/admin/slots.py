from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from app.api.deps import Caller, get_current_manager, get_slot_store
from app.api.v1.public.slots import TIME_PATTERN, check_range
from app.schemas.slots import (
    BlockedSlot,
    BlockRequest,
    BookedSlot,
    BookingData,
    CleanupResponse,
    ReleaseResponse,
    ReservedSlot,
    ReserveRequest,
    SlotCalendarResponse,
    SlotConfig,
    VenueSlots,
)
from app.services.slot_reader import reconstruct_slots, summarize_slots
from app.services.slot_store import SlotStore
from app.services.slot_writer import (
    block_slot,
    book_slot,
    clean_expired_holds,
    initialize_venue_slots,
    reserve_slot,
    unblock_slot,
    unbook_slot,
    unreserve_slot,
    update_slot_config,
)

router = APIRouter(prefix="/admin/venues", tags=["Admin - Slots"])

SLOT_PATH = "/{venue_id}/slots/{slot_date}/{start_time}"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@router.post(
    "/{venue_id}/slots/initialize",
    response_model=VenueSlots,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def initialize_slots(
    venue_id: str,
    config: Dict[str, Any] = Body(...),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    """
    Create the venue's slot document from its opening hours.
    Re-initializing an existing venue starts it over with no blocks,
    bookings, holds or reservations.
    """
    return initialize_venue_slots(store, venue_id, config)


@router.patch(
    "/{venue_id}/slots/config",
    response_model=SlotConfig,
    response_model_by_alias=True,
)
def patch_slot_config(
    venue_id: str,
    changes: Dict[str, Any] = Body(...),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    """
    Merge changes into the slot configuration.
    Existing bookings are not migrated: changing the duration or hours can
    leave records that no longer line up with the grid.
    """
    return update_slot_config(store, venue_id, changes)


# ---------------------------------------------------------------------------
# Manager calendar
# ---------------------------------------------------------------------------


@router.get(
    "/{venue_id}/slots/calendar",
    response_model=SlotCalendarResponse,
    response_model_exclude_none=True,
    response_model_by_alias=True,
)
def get_slot_calendar(
    venue_id: str,
    start_date: date = Query(...),
    end_date: Optional[date] = Query(None),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    end_date = end_date or start_date
    check_range(start_date, end_date)
    slots = reconstruct_slots(store, venue_id, start_date, end_date)
    return SlotCalendarResponse(
        venue_id=venue_id,
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
        summary=summarize_slots(slots),
        slots=slots,
    )


@router.post(
    "/{venue_id}/slots/holds/cleanup",
    response_model=CleanupResponse,
)
def cleanup_holds(
    venue_id: str,
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    """Drop expired checkout holds now instead of waiting for the sweeper."""
    return CleanupResponse(removed=clean_expired_holds(store, venue_id))


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


@router.post(
    SLOT_PATH + "/block",
    response_model=BlockedSlot,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def create_block(
    venue_id: str,
    slot_date: date,
    body: Optional[BlockRequest] = None,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    """
    Block a slot. Existing bookings are not checked here; look at the
    calendar first if an occupied slot should stay untouched.
    """
    reason = body.reason if body else None
    return block_slot(store, venue_id, slot_date, start_time, reason=reason, blocked_by=manager.user_id)


@router.delete(SLOT_PATH + "/block", response_model=ReleaseResponse)
def delete_block(
    venue_id: str,
    slot_date: date,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    return ReleaseResponse(released=unblock_slot(store, venue_id, slot_date, start_time))


# ---------------------------------------------------------------------------
# Reservations (manual hold without a booking)
# ---------------------------------------------------------------------------


@router.post(
    SLOT_PATH + "/reserve",
    response_model=ReservedSlot,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def create_reservation(
    venue_id: str,
    slot_date: date,
    body: Optional[ReserveRequest] = None,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    note = body.note if body else None
    return reserve_slot(store, venue_id, slot_date, start_time, reserved_by=manager.user_id, note=note)


@router.delete(SLOT_PATH + "/reserve", response_model=ReleaseResponse)
def delete_reservation(
    venue_id: str,
    slot_date: date,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    return ReleaseResponse(released=unreserve_slot(store, venue_id, slot_date, start_time))


# ---------------------------------------------------------------------------
# Bookings: walk-ins at the desk and verified online payments
# ---------------------------------------------------------------------------


@router.post(
    SLOT_PATH + "/booking",
    response_model=BookedSlot,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    venue_id: str,
    slot_date: date,
    body: BookingData,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    """
    Record a booking. Any hold on the slot is converted; only an existing
    booking makes this fail (409). Physical bookings without a bookingId
    get a generated `physical_...` reference.
    """
    return book_slot(store, venue_id, slot_date, start_time, body)


@router.delete(SLOT_PATH + "/booking", response_model=ReleaseResponse)
def delete_booking(
    venue_id: str,
    slot_date: date,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    manager: Caller = Depends(get_current_manager),
):
    return ReleaseResponse(released=unbook_slot(store, venue_id, slot_date, start_time))
