"""Bring the declarations schema to the latest Alembic revision at startup."""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy.engine import make_url

from .database import SQLALCHEMY_DATABASE_URL

LOGGER = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parent.parent
LOCK_PATH = BACKEND_DIR / ".alembic-migration.lock"
LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"
DEFAULT_LOCK_TIMEOUT = 30.0
LOCK_POLL_SECONDS = 0.25

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl

    def _try_lock(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)

else:  # pragma: no cover - platform specific
    import msvcrt

    def _try_lock(fd: int) -> None:
        msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)

    def _unlock(fd: int) -> None:
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)


def _read_lock_timeout() -> float:
    raw = os.getenv(LOCK_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_LOCK_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value <= 0:
        LOGGER.warning(
            "Ignoring %s=%s; waiting %.1f seconds for the migration lock",
            LOCK_TIMEOUT_ENV,
            raw,
            DEFAULT_LOCK_TIMEOUT,
        )
        return DEFAULT_LOCK_TIMEOUT
    return value


@contextmanager
def migration_lock(
    path: Optional[Path] = None, *, timeout: Optional[float] = None
) -> Iterator[None]:
    """Hold an exclusive file lock so only one worker upgrades the schema."""

    path = LOCK_PATH if path is None else path
    timeout = _read_lock_timeout() if timeout is None else timeout
    deadline = time.monotonic() + timeout
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a+") as handle:
        while True:
            try:
                _try_lock(handle.fileno())
                break
            except OSError as exc:
                if time.monotonic() >= deadline:
                    raise TimeoutError(f"Migration lock {path} still held after {timeout}s") from exc
                time.sleep(LOCK_POLL_SECONDS)
        try:
            yield
        finally:
            _unlock(handle.fileno())


def alembic_config(database_url: Optional[str] = None) -> Config:
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option(
        "sqlalchemy.url", database_url or os.getenv("DATABASE_URL") or SQLALCHEMY_DATABASE_URL
    )
    return config


def run_database_migrations() -> Optional[str]:
    """Upgrade the database to ``head`` and return the head revision."""

    project_root = str(BACKEND_DIR.parent)
    if project_root not in sys.path:
        sys.path.insert(0, project_root)

    config = alembic_config()
    url = make_url(config.get_main_option("sqlalchemy.url"))
    head = ScriptDirectory.from_config(config).get_current_head()
    LOGGER.info(
        "Upgrading %s to revision %s", url.render_as_string(hide_password=True), head
    )

    with migration_lock():
        command.upgrade(config, "head")
    return head


__all__ = ["alembic_config", "migration_lock", "run_database_migrations"]
