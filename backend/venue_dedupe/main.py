"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from venue_dedupe.config import get_settings
from venue_dedupe.db.session import SessionLocal
from venue_dedupe.routers import duplicates, merges
from venue_dedupe.services.fuzzy_duplicates import count_fuzzy_duplicates

logger = logging.getLogger(__name__)


def _warm_backend_state() -> None:
    """Prime the DB connection and the review queue count at process start."""

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            count_fuzzy_duplicates(db)
    except Exception:
        logger.exception("Backend warm-up failed; continuing without startup pre-warm.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _warm_backend_state()
    yield


app = FastAPI(title=get_settings().app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(duplicates.router, tags=["duplicates"])
app.include_router(merges.router, tags=["merges"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
