from datetime import date, datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from app.api.deps import Caller, get_current_caller, get_slot_store
from app.core.config import settings
from app.schemas.slots import HeldSlot, HoldRequest, PublicSlot, ReconstructedSlot, ReleaseResponse
from app.services.slot_reader import get_slot_status, reconstruct_slots
from app.services.slot_store import SlotStore
from app.services.slot_writer import hold_slot, release_hold

router = APIRouter(prefix="/venues", tags=["Slots"])

TIME_PATTERN = r"^\d{2}:\d{2}$"


def to_public(slot: ReconstructedSlot) -> PublicSlot:
    return PublicSlot.model_validate(slot.model_dump(include=set(PublicSlot.model_fields)))


def check_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    if (end_date - start_date).days + 1 > settings.MAX_RANGE_DAYS:
        raise HTTPException(
            status_code=400,
            detail=f"Date range is limited to {settings.MAX_RANGE_DAYS} days",
        )


# ---------------------------------------------------------------------------
# Public: availability (date picker screen)
# ---------------------------------------------------------------------------


@router.get(
    "/{venue_id}/slots",
    response_model=List[PublicSlot],
    response_model_exclude_none=True,
    response_model_by_alias=True,
)
def list_venue_slots(
    venue_id: str,
    start_date: date = Query(..., description="First day (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Last day, inclusive; defaults to start_date"),
    store: SlotStore = Depends(get_slot_store),
):
    """
    Upcoming slots for a venue with their current status.
    Past slots and closed weekdays are omitted. A venue without a slot
    configuration returns an empty list.
    """
    end_date = end_date or start_date
    check_range(start_date, end_date)
    return [to_public(s) for s in reconstruct_slots(store, venue_id, start_date, end_date)]


@router.get(
    "/{venue_id}/slots/{slot_date}/{start_time}",
    response_model=PublicSlot,
    response_model_exclude_none=True,
    response_model_by_alias=True,
)
def get_venue_slot(
    venue_id: str,
    slot_date: date,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
):
    slot = get_slot_status(store, venue_id, slot_date, start_time)
    if slot is None:
        raise HTTPException(status_code=404, detail="Slot not found")
    return to_public(slot)


# ---------------------------------------------------------------------------
# Checkout holds (auth required)
# ---------------------------------------------------------------------------


@router.post(
    "/{venue_id}/slots/{slot_date}/{start_time}/hold",
    response_model=HeldSlot,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def create_hold(
    venue_id: str,
    slot_date: date,
    body: HoldRequest,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    caller: Caller = Depends(get_current_caller),
):
    """
    Hold a slot for the authenticated user while they pay.
    The hold expires on its own; it cannot be extended while live.
    """
    return hold_slot(
        store,
        venue_id,
        slot_date,
        start_time,
        user_id=caller.user_id,
        booking_id=body.booking_id,
        hold_duration_minutes=body.hold_duration_minutes,
    )


@router.delete(
    "/{venue_id}/slots/{slot_date}/{start_time}/hold",
    response_model=ReleaseResponse,
)
def delete_hold(
    venue_id: str,
    slot_date: date,
    start_time: str = Path(..., pattern=TIME_PATTERN),
    store: SlotStore = Depends(get_slot_store),
    caller: Caller = Depends(get_current_caller),
):
    """Release the hold on a slot (user backs out of checkout)."""
    aggregate = store.read(venue_id)
    if aggregate is not None:
        key = (slot_date.isoformat(), start_time)
        now = datetime.now(timezone.utc)
        for hold in aggregate.held:
            # Stored holds, so past and off-grid cells are covered too
            if hold.key == key and hold.is_live(now) and hold.user_id != caller.user_id:
                raise HTTPException(status_code=403, detail="Hold belongs to another user")
    return ReleaseResponse(released=release_hold(store, venue_id, slot_date, start_time))
