from fastapi import APIRouter

# Public: availability and checkout holds
from app.api.v1.public.slots import router as public_slots_router

# Manager / internal: configuration, blocks, reservations, bookings
from app.api.v1.admin.slots import router as admin_slots_router

api_router = APIRouter()

# --- Public ---
api_router.include_router(public_slots_router)

# --- Admin ---
api_router.include_router(admin_slots_router)
