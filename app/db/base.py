from app.db.session import Base
from app.models.venue_slots import VenueSlotsRecord
