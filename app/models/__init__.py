from app.models.venue_slots import VenueSlotsRecord
