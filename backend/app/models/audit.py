"""Audit trail models for accounting file operations."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class FileHistoryAction(str, enum.Enum):
    """Actions recorded in the file history."""

    UPLOAD_COMPTABLE = "UPLOAD_COMPTABLE"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    ETL_TRIGGERED = "ETL_TRIGGERED"
    RETRY_SUCCESS = "RETRY_SUCCESS"
    RETRY_FAILED = "RETRY_FAILED"


FILE_HISTORY_ACTION_ENUM = SAEnum(
    FileHistoryAction,
    name="file_history_action_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class FileHistory(Base):
    """Append-only record of one action taken against one file."""

    __tablename__ = "file_history"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    file_id = Column(
        GUID(),
        ForeignKey("comptable_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_name = Column(String(512), nullable=False)
    action = Column(FILE_HISTORY_ACTION_ENUM, nullable=False)
    details = Column(Text, nullable=True)
    performed_by = Column(String(255), nullable=True)
    performed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    file = relationship("ComptableFile", back_populates="history")


Index("file_history_file_idx", FileHistory.file_id)
