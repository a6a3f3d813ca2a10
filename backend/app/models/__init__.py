"""Expose SQLAlchemy models for convenient imports."""

from .audit import FileHistory, FileHistoryAction
from .client import Client, Organization
from .comptable_file import (
    REQUIRED_FILE_TYPES,
    ComptableFile,
    FileStatus,
    FileType,
)
from .comptable_period import ComptablePeriod, ProcessingStatus

__all__ = [
    "Organization",
    "Client",
    "ComptablePeriod",
    "ProcessingStatus",
    "ComptableFile",
    "FileStatus",
    "FileType",
    "REQUIRED_FILE_TYPES",
    "FileHistory",
    "FileHistoryAction",
]
