"""
Slot engine error taxonomy.

Every failure the engine surfaces is a SlotError subclass carrying a stable
`code` and the HTTP status the API layer maps it to, so routes never need
their own if/else chains over exception types.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.schemas.common import ErrorResponse


class SlotError(Exception):
    """Base class for all slot engine failures."""

    code = "slot_error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotInitialized(SlotError):
    """Mutation attempted before the venue's slot document was initialized."""

    code = "not_initialized"
    status_code = 404

    def __init__(self, venue_id: str):
        self.venue_id = venue_id
        super().__init__(f"Slots for venue {venue_id} are not initialized")


class AlreadyBooked(SlotError):
    code = "already_booked"
    status_code = 409

    def __init__(self, date: str, start_time: str):
        self.date = date
        self.start_time = start_time
        super().__init__(f"Slot {date} {start_time} is already booked")


class HeldByOther(SlotError):
    code = "held_by_other"
    status_code = 409

    def __init__(self, date: str, start_time: str, holder: Optional[str] = None):
        self.date = date
        self.start_time = start_time
        self.holder = holder
        super().__init__(f"Slot {date} {start_time} is currently held")


class HoldNotRenewable(HeldByOther):
    """The caller already holds the slot; live holds cannot be extended."""

    code = "hold_not_renewable"

    def __init__(self, date: str, start_time: str, holder: Optional[str] = None):
        super().__init__(date, start_time, holder)
        self.message = f"Slot {date} {start_time} is already held by you and cannot be renewed"
        self.args = (self.message,)


class Conflict(SlotError):
    """Optimistic write kept losing to concurrent writers."""

    code = "conflict"
    status_code = 409

    def __init__(self, venue_id: str, attempts: int):
        self.venue_id = venue_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent updates to venue {venue_id} slots; gave up after {attempts} attempt(s)"
        )


class InvalidConfig(SlotError):
    code = "invalid_config"
    status_code = 422


async def slot_error_handler(request: Request, exc: SlotError) -> JSONResponse:
    """Render a SlotError as the shared ErrorResponse body."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.code, message=exc.message).model_dump(),
    )


HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Route-level HTTPExceptions share the ErrorResponse body with SlotErrors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
            message=str(exc.detail),
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )
