"""SQLAlchemy model for accounting periods submitted by clients."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class ProcessingStatus(str, enum.Enum):
    """Lifecycle of a period (and, mirrored, of its files) in the ETL pipeline."""

    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


PROCESSING_STATUS_ENUM = SAEnum(
    ProcessingStatus,
    name="processing_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class ComptablePeriod(Base):
    """One accounting period for one client, backed by a batch of five files."""

    __tablename__ = "comptable_periods"
    __table_args__ = (
        CheckConstraint(
            "period_end >= period_start", name="ck_comptable_periods_valid_range"
        ),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    client_id = Column(
        GUID(),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    year = Column(Integer, nullable=False)
    batch_id = Column(GUID(), nullable=False, unique=True)
    status = Column(
        PROCESSING_STATUS_ENUM,
        nullable=False,
        default=ProcessingStatus.PENDING,
    )
    dag_run_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    client = relationship("Client", back_populates="periods")
    files = relationship(
        "ComptableFile",
        back_populates="period",
        order_by="ComptableFile.created_at",
    )


Index(
    "comptable_periods_client_status_idx",
    ComptablePeriod.client_id,
    ComptablePeriod.status,
)
Index("comptable_periods_created_at_idx", ComptablePeriod.created_at)
