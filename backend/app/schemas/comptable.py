"""Pydantic schemas for declaration batches, periods and files."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models import FileStatus, FileType, ProcessingStatus
from .common import PaginatedResponse


class ClientSummary(BaseModel):
    id: UUID
    name: str

    model_config = ConfigDict(from_attributes=True)


class PeriodBounds(BaseModel):
    """Inclusive bounds of an accounting period."""

    start: date
    end: date


class ComptableFileRead(BaseModel):
    """Stored accounting file as returned by the API."""

    id: UUID
    file_name: str
    file_type: FileType
    file_year: int
    storage_key: str
    file_size: int
    mime_type: str
    status: FileStatus
    processing_status: ProcessingStatus
    error_message: Optional[str] = None
    batch_id: UUID
    period_id: Optional[UUID] = None
    client_id: UUID
    uploaded_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PeriodRead(BaseModel):
    """Accounting period with its processing status."""

    id: UUID
    client_id: UUID
    period_start: date
    period_end: date
    year: int
    batch_id: UUID
    status: ProcessingStatus
    dag_run_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    client: Optional[ClientSummary] = None

    model_config = ConfigDict(from_attributes=True)


class PeriodDetail(PeriodRead):
    files: list[ComptableFileRead] = Field(default_factory=list)


class BatchUploadResponse(BaseModel):
    """Returned once the five files of a batch are stored."""

    message: str = "Fichiers comptables uploadés avec succès"
    batch_id: UUID
    period: PeriodBounds
    status: ProcessingStatus
    storage_prefix: str
    backup_prefix: Optional[str] = None
    files: list[ComptableFileRead] = Field(default_factory=list)


class TriggerEtlRequest(BaseModel):
    """Payload used to start the ETL of an uploaded batch."""

    batch_id: UUID


class TriggerEtlResponse(BaseModel):
    message: str = "Traitement ETL déclenché avec succès"
    batch_id: UUID
    dag_run_id: str
    status: ProcessingStatus
    period: PeriodBounds
    storage_prefix: str


class ProcessingPeriodListResponse(BaseModel):
    periods: list[PeriodRead] = Field(default_factory=list)


class PeriodListResponse(PaginatedResponse[PeriodDetail]):
    """Paginated collection of accounting periods."""


class FileRetryResponse(BaseModel):
    message: str = "Fichier relancé avec succès"
    file: ComptableFileRead
