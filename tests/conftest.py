import os

# Keep the app's own engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.db.base import Base
from app.db.session import build_engine
from app.services.slot_store import SlotStore
from app.services.slot_writer import initialize_venue_slots

VENUE = "venue-1"

# Monday 2 March 2026, 06:00 UTC
NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)
MONDAY = "2026-03-02"


@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads share one database
    eng = build_engine(f"sqlite:///{tmp_path / 'slots.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return SlotStore(session_factory, max_retries=10)


@pytest.fixture
def venue(store):
    """A weekday venue open 09:00-11:00 in one-hour slots, on UTC."""
    initialize_venue_slots(
        store,
        VENUE,
        {
            "startTime": "09:00",
            "endTime": "11:00",
            "slotDurationMinutes": 60,
            "daysOfWeek": [1, 2, 3, 4, 5],
            "timezone": "UTC",
        },
    )
    return VENUE
