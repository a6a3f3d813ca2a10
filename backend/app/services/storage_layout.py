"""Object key layout for declaration batches.

Every batch lives under::

    <client_id>/declaration/<year>/periode-<YYYYMMDD>-<YYYYMMDD>/

and the ETL pipeline relies on that exact layout, so any change here must be
coordinated with the DAG.
"""

from __future__ import annotations

import posixpath
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

from .french_dates import format_yyyymmdd

DEFAULT_EXTENSION = "xlsx"
BACKUP_SEGMENT = "backup/"
SUCCESS_SEGMENT = "success/"


def build_period_prefix(client_id: UUID | str, start: date, end: date) -> str:
    return (
        f"{client_id}/declaration/{start.year}/"
        f"periode-{format_yyyymmdd(start)}-{format_yyyymmdd(end)}/"
    )


def file_extension(filename: str) -> str:
    """Return the extension of ``filename`` as uploaded, or ``xlsx`` when missing."""

    _, ext = posixpath.splitext(filename or "")
    ext = ext.lstrip(".")
    return ext or DEFAULT_EXTENSION


def build_object_name(end: date, category: str, client_name: str, extension: str) -> str:
    return f"{format_yyyymmdd(end)}_{category}_{client_name}.{extension}"


def build_object_key(
    prefix: str, end: date, category: str, client_name: str, original_filename: str
) -> str:
    return prefix + build_object_name(end, category, client_name, file_extension(original_filename))


def build_backup_prefix(prefix: str, now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return f"{prefix}{BACKUP_SEGMENT}{moment.strftime('%Y%m%d_%H%M%S')}/"


def is_backup_candidate(key: str) -> bool:
    """Objects already inside a backup or success folder are never backed up again."""

    return BACKUP_SEGMENT not in key and SUCCESS_SEGMENT not in key


def basename(key: str) -> str:
    return key.rsplit("/", 1)[-1]


__all__ = [
    "DEFAULT_EXTENSION",
    "build_period_prefix",
    "file_extension",
    "build_object_name",
    "build_object_key",
    "build_backup_prefix",
    "is_backup_candidate",
    "basename",
]
