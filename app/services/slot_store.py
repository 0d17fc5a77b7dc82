"""
Durable per-venue slot aggregate with an optimistic atomic-update primitive.

Each venue owns exactly one `venue_slots` row. Writers never lock: they read
the row, compute the new state in Python, and commit with
`UPDATE ... WHERE version = <version read>`. A writer that lost the race gets
StaleDataError, throws its work away and starts over from a fresh read.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import Conflict, NotInitialized
from app.db.session import SessionLocal
from app.models.venue_slots import VenueSlotsRecord
from app.schemas.slots import SlotConfig, VenueSlots

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COLLECTIONS = ("blocked", "bookings", "held", "reserved")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_aggregate(row: VenueSlotsRecord) -> VenueSlots:
    return VenueSlots.model_validate(
        {
            "venueId": row.venue_id,
            "config": row.config,
            "blocked": row.blocked or [],
            "bookings": row.bookings or [],
            "held": row.held or [],
            "reserved": row.reserved or [],
            "updatedAt": row.updated_at,
        }
    )


def _apply(row: VenueSlotsRecord, aggregate: VenueSlots) -> None:
    """Copy aggregate state onto the row. Lists are reassigned, never mutated in place."""
    doc = aggregate.model_dump(mode="json", by_alias=True)
    row.config = doc["config"]
    for name in _COLLECTIONS:
        setattr(row, name, doc[name])
    row.updated_at = aggregate.updated_at


class SlotStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal, max_retries: Optional[int] = None):
        self.session_factory = session_factory
        self.max_retries = max_retries or settings.SLOT_TX_MAX_RETRIES

    def read(self, venue_id: str) -> Optional[VenueSlots]:
        """Current aggregate, or None if the venue was never initialized."""
        with self.session_factory() as db:
            row = db.get(VenueSlotsRecord, venue_id)
            if row is None:
                return None
            return _to_aggregate(row)

    def venue_ids(self) -> List[str]:
        with self.session_factory() as db:
            return list(db.scalars(select(VenueSlotsRecord.venue_id)).all())

    def create(self, venue_id: str, config: SlotConfig) -> VenueSlots:
        """
        Write the zero-state aggregate for a venue.

        An existing document is replaced wholesale, exceptions included.
        """
        for attempt in range(1, self.max_retries + 1):
            aggregate = VenueSlots(venue_id=venue_id, config=config, updated_at=_utcnow())
            with self.session_factory() as db:
                row = db.get(VenueSlotsRecord, venue_id)
                if row is None:
                    row = VenueSlotsRecord(venue_id=venue_id)
                    db.add(row)
                else:
                    logger.warning("Re-initializing slots for venue %s; existing exceptions are discarded.", venue_id)
                _apply(row, aggregate)
                try:
                    db.commit()
                except (IntegrityError, StaleDataError):
                    db.rollback()
                    logger.warning("Concurrent initialization of venue %s (attempt %d), retrying.", venue_id, attempt)
                    continue
                return aggregate
        raise Conflict(venue_id, self.max_retries)

    def atomic_update(self, venue_id: str, fn: Callable[[VenueSlots], T]) -> T:
        """
        Run `fn` against a private copy of the venue's aggregate and commit it.

        `fn` mutates the aggregate it receives and returns whatever the caller
        wants back. It may run several times (once per attempt), so it must
        derive everything from the aggregate passed in. Exceptions raised by
        `fn` abort the attempt without writing and propagate as-is.

        Raises NotInitialized if the venue has no document, Conflict once
        `max_retries` attempts have all lost a version race.
        """
        for attempt in range(1, self.max_retries + 1):
            with self.session_factory() as db:
                row = db.get(VenueSlotsRecord, venue_id)
                if row is None:
                    raise NotInitialized(venue_id)

                current = _to_aggregate(row)
                working = current.model_copy(deep=True)
                result = fn(working)

                if working.model_dump() == current.model_dump():
                    return result

                working.updated_at = _utcnow()
                _apply(row, working)
                try:
                    db.commit()
                except StaleDataError:
                    db.rollback()
                    logger.warning(
                        "Write race on venue %s slots (attempt %d/%d), retrying.",
                        venue_id, attempt, self.max_retries,
                    )
                    continue
                return result

        raise Conflict(venue_id, self.max_retries)
