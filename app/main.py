import asyncio
import logging

from fastapi import FastAPI
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.db.init_db import create_database
from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.core.config import settings
from app.core.errors import SlotError, http_error_handler, slot_error_handler
from app.api.v1.router import api_router
from app.services.slot_store import SlotStore

logger = logging.getLogger(__name__)


def check_readiness() -> bool:
    """
    One-time startup check that the slot store is reachable.

    A failure is logged, not raised: the API still starts, and every slot
    operation will fail on its own until the database comes back.
    """
    create_database()
    try:
        Base.metadata.create_all(bind=engine)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Slot store is not reachable; slot operations will fail until it is.", exc_info=True)
        return False
    return True


async def _hold_sweep_loop() -> None:
    """Background task: drop expired checkout holds every HOLD_SWEEP_INTERVAL_SECONDS."""
    from app.services.slot_writer import clean_all_expired_holds

    store = SlotStore(SessionLocal)
    while True:
        try:
            count = await asyncio.to_thread(clean_all_expired_holds, store)
            if count:
                logger.info("Removed %d expired hold(s).", count)
        except Exception:
            logger.exception("Error during expired-hold sweep.")
        await asyncio.sleep(settings.HOLD_SWEEP_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: readiness check, then keep sweeping holds in the background
    check_readiness()
    sweep_task = asyncio.create_task(_hold_sweep_loop())
    yield

    # Shutdown: cancel background task
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(SlotError, slot_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)

app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"Hello": "Venue Slots"}
