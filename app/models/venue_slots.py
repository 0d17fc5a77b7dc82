from sqlalchemy import Column, String, Integer, DateTime, JSON, func
from sqlalchemy.dialects.postgresql import JSONB
from app.db.session import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class VenueSlotsRecord(Base):
    """
    One row per venue: slot configuration plus the four sparse exception lists.
    Individual slots are never stored; they are reconstructed on read.
    """
    __tablename__ = "venue_slots"

    venue_id = Column(String(64), primary_key=True)
    config = Column(JSONDocument, nullable=False)
    blocked = Column(JSONDocument, nullable=False, default=list)
    bookings = Column(JSONDocument, nullable=False, default=list)
    held = Column(JSONDocument, nullable=False, default=list)
    reserved = Column(JSONDocument, nullable=False, default=list)
    version = Column(Integer, nullable=False)  # optimistic concurrency counter
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"version_id_col": version}
