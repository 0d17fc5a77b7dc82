from __future__ import annotations

import enum
from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.core.config import settings
from app.utils.timeslots import parse_minutes

SlotKey = Tuple[str, str]  # (date "YYYY-MM-DD", start time "HH:MM")


# Stored documents and API payloads use camelCase field names
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BLOCKED = "BLOCKED"
    BOOKED = "BOOKED"
    HELD = "HELD"
    RESERVED = "RESERVED"


# ---------------------------------------------------------------------------
# Venue configuration
# ---------------------------------------------------------------------------


class SlotConfig(CamelModel):
    start_time: str
    end_time: str
    slot_duration_minutes: int = Field(
        ge=15,
        le=240,
        alias="slotDurationMinutes",
        validation_alias=AliasChoices(
            "slotDurationMinutes", "slotDuration", "slot_duration_minutes"
        ),
    )
    days_of_week: List[int]  # 0 = Sunday ... 6 = Saturday
    timezone: str = Field(default_factory=lambda: settings.DEFAULT_TIMEZONE)

    @field_validator("start_time", "end_time")
    @classmethod
    def check_hhmm(cls, v: str) -> str:
        parse_minutes(v)
        return v

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("daysOfWeek must not be empty")
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"daysOfWeek entries must be 0-6, got {day}")
        return sorted(set(v))

    @field_validator("timezone", mode="before")
    @classmethod
    def check_timezone(cls, v):
        if v in (None, ""):
            return settings.DEFAULT_TIMEZONE
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone '{v}'")
        return v

    @model_validator(mode="after")
    def check_window(self) -> "SlotConfig":
        start = parse_minutes(self.start_time)
        end = parse_minutes(self.end_time)
        if start >= end:
            raise ValueError("startTime must be before endTime")
        if end - start < self.slot_duration_minutes:
            raise ValueError("Opening window is shorter than one slot")
        return self


# ---------------------------------------------------------------------------
# Exception records, one list of each per venue
# ---------------------------------------------------------------------------


class SlotRecord(CamelModel):
    date: str
    start_time: str

    @property
    def key(self) -> SlotKey:
        return (self.date, self.start_time)


class BlockedSlot(SlotRecord):
    reason: Optional[str] = None
    blocked_by: Optional[str] = None
    blocked_at: datetime


class BookedSlot(SlotRecord):
    booking_id: str
    booking_type: Literal["physical", "online"]
    status: Literal["confirmed", "pending_payment"]
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime

    @field_validator("booking_type", mode="before")
    @classmethod
    def legacy_booking_type(cls, v):
        # Older documents call online checkout bookings "website"
        return "online" if v == "website" else v


class HeldSlot(SlotRecord):
    user_id: str
    booking_id: str
    hold_expires_at: datetime
    created_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.hold_expires_at > now


class ReservedSlot(SlotRecord):
    reserved_by: str
    note: Optional[str] = None
    reserved_at: datetime


class VenueSlots(CamelModel):
    """The per-venue aggregate: configuration plus the four exception lists."""

    venue_id: str
    config: SlotConfig
    blocked: List[BlockedSlot] = []
    bookings: List[BookedSlot] = []
    held: List[HeldSlot] = []
    reserved: List[ReservedSlot] = []
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Reconstruction output
# ---------------------------------------------------------------------------


class ReconstructedSlot(CamelModel):
    date: str
    start_time: str
    end_time: str
    status: SlotStatus
    booking_type: Optional[str] = None
    booking_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    user_id: Optional[str] = None
    reason: Optional[str] = None
    note: Optional[str] = None
    hold_expires_at: Optional[datetime] = None


class PublicSlot(CamelModel):
    """What anonymous visitors see: availability only, never who booked or holds it."""

    date: str
    start_time: str
    end_time: str
    status: SlotStatus
    hold_expires_at: Optional[datetime] = None


class SlotCalendarResponse(CamelModel):
    venue_id: str
    start_date: str
    end_date: str
    summary: Dict[str, int]
    slots: List[ReconstructedSlot]


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------


class BookingData(CamelModel):
    booking_id: Optional[str] = None  # generated for walk-in (physical) bookings
    booking_type: Literal["physical", "online"]
    status: Literal["confirmed", "pending_payment"] = "confirmed"
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("booking_type", mode="before")
    @classmethod
    def legacy_booking_type(cls, v):
        return "online" if v == "website" else v

    @model_validator(mode="after")
    def online_needs_booking_id(self) -> "BookingData":
        if self.booking_type == "online" and not self.booking_id:
            raise ValueError("bookingId is required for online bookings")
        return self


class HoldRequest(CamelModel):
    booking_id: str
    hold_duration_minutes: Optional[int] = Field(default=None, ge=1, le=60)


class BlockRequest(CamelModel):
    reason: Optional[str] = None


class ReserveRequest(CamelModel):
    note: Optional[str] = None


class ReleaseResponse(CamelModel):
    released: bool


class CleanupResponse(CamelModel):
    removed: int
