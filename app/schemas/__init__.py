from app.schemas.common import ErrorResponse
from app.schemas.slots import (
    SlotConfig, SlotStatus, VenueSlots,
    BlockedSlot, BookedSlot, HeldSlot, ReservedSlot,
    ReconstructedSlot, PublicSlot, SlotCalendarResponse,
    BookingData, HoldRequest, BlockRequest, ReserveRequest,
    ReleaseResponse, CleanupResponse,
)
