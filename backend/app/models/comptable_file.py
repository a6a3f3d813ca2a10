"""SQLAlchemy model for the spreadsheets that make up a declaration batch."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID
from .comptable_period import PROCESSING_STATUS_ENUM, ProcessingStatus


class FileType(str, enum.Enum):
    """The five accounting exports required for every period."""

    GRAND_LIVRE_COMPTES = "GRAND_LIVRE_COMPTES"
    GRAND_LIVRE_TIERS = "GRAND_LIVRE_TIERS"
    PLAN_COMPTES = "PLAN_COMPTES"
    PLAN_TIERS = "PLAN_TIERS"
    CODE_JOURNAL = "CODE_JOURNAL"


REQUIRED_FILE_TYPES: tuple[FileType, ...] = (
    FileType.GRAND_LIVRE_COMPTES,
    FileType.GRAND_LIVRE_TIERS,
    FileType.PLAN_COMPTES,
    FileType.PLAN_TIERS,
    FileType.CODE_JOURNAL,
)


class FileStatus(str, enum.Enum):
    """Storage status of an uploaded file."""

    SUCCESS = "SUCCESS"
    PROCESSING = "PROCESSING"
    ERROR = "ERROR"


FILE_TYPE_ENUM = SAEnum(
    FileType,
    name="comptable_file_type_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

FILE_STATUS_ENUM = SAEnum(
    FileStatus,
    name="comptable_file_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class ComptableFile(Base):
    """A single accounting export stored in the object store."""

    __tablename__ = "comptable_files"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    file_name = Column(String(512), nullable=False)
    file_type = Column(FILE_TYPE_ENUM, nullable=False)
    file_year = Column(Integer, nullable=False)
    storage_key = Column(String(1024), nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(255), nullable=False)
    status = Column(FILE_STATUS_ENUM, nullable=False, default=FileStatus.SUCCESS)
    processing_status = Column(
        PROCESSING_STATUS_ENUM,
        nullable=False,
        default=ProcessingStatus.PENDING,
    )
    error_message = Column(Text, nullable=True)
    batch_id = Column(GUID(), nullable=False)
    period_id = Column(
        GUID(),
        ForeignKey("comptable_periods.id", ondelete="SET NULL"),
        nullable=True,
    )
    client_id = Column(
        GUID(),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    uploaded_by = Column(String(255), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    client = relationship("Client", back_populates="files")
    period = relationship("ComptablePeriod", back_populates="files")
    history = relationship(
        "FileHistory",
        back_populates="file",
        order_by="FileHistory.performed_at",
    )


Index("comptable_files_batch_idx", ComptableFile.batch_id)
Index("comptable_files_client_idx", ComptableFile.client_id)
