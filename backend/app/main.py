"""Expose the declaration batch FastAPI app and enforce local development CORS defaults."""

import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import dispose_engine
from .dependencies import close_job_dispatcher
from .migrations import run_database_migrations
from .routers import auth_router, comptable_router, files_router

LOGGER = logging.getLogger(__name__)

LOCAL_DEVELOPMENT_ORIGINS = {
    "http://localhost:3000",
    "http://localhost:5173",
}
LOCALHOST_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$"

DEFAULT_ALLOWED_ORIGINS = {
    *LOCAL_DEVELOPMENT_ORIGINS,
    "http://127.0.0.1:3000",
    "http://0.0.0.0:3000",
    "http://127.0.0.1:5173",
    "http://0.0.0.0:5173",
}


def _normalize_origin(origin: str) -> str | None:
    stripped = origin.strip()
    if not stripped:
        return None
    return stripped.rstrip("/")


def _read_allowed_origins(raw_origins: Iterable[str]) -> list[str]:
    normalized = {_normalize_origin(origin) for origin in raw_origins}
    return sorted({origin for origin in normalized if origin})


def _split_raw_origins(raw_value: str) -> list[str]:
    """Split a raw origin string using commas or whitespace as separators."""

    return [origin for origin in re.split(r"[\s,]+", raw_value) if origin]


def _resolve_allowed_origins() -> list[str]:
    raw_value = os.getenv("BACKEND_ALLOWED_ORIGINS")
    if raw_value:
        origins = _read_allowed_origins(_split_raw_origins(raw_value))
        if origins:
            return origins
    return _read_allowed_origins(DEFAULT_ALLOWED_ORIGINS)


def _read_bool_env(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def ensure_database_is_ready() -> None:
    """Apply pending database migrations when the service starts."""

    if not _read_bool_env("RUN_DB_MIGRATIONS", True):
        LOGGER.info("Database migrations disabled via RUN_DB_MIGRATIONS")
        return
    LOGGER.info("Ensuring database schema is up to date before serving requests")
    run_database_migrations()


def release_resources() -> None:
    """Close the orchestrator client and the connection pool on shutdown."""

    close_job_dispatcher()
    dispose_engine()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    try:
        yield
    finally:
        release_resources()


app = FastAPI(title="Declaration Batch API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_allowed_origins(),
    allow_origin_regex=LOCALHOST_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(comptable_router, prefix="/comptable", tags=["comptable"])
app.include_router(files_router, prefix="/files", tags=["files"])


@app.get("/", tags=["health"])
def read_root() -> dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}
