"""Expose Pydantic schemas for convenient imports."""

from .auth import LoginRequest, TokenResponse
from .common import PaginatedResponse
from .comptable import (
    BatchUploadResponse,
    ClientSummary,
    ComptableFileRead,
    FileRetryResponse,
    PeriodBounds,
    PeriodDetail,
    PeriodListResponse,
    PeriodRead,
    ProcessingPeriodListResponse,
    TriggerEtlRequest,
    TriggerEtlResponse,
)

__all__ = [
    "LoginRequest",
    "TokenResponse",
    "PaginatedResponse",
    "BatchUploadResponse",
    "ClientSummary",
    "ComptableFileRead",
    "FileRetryResponse",
    "PeriodBounds",
    "PeriodDetail",
    "PeriodListResponse",
    "PeriodRead",
    "ProcessingPeriodListResponse",
    "TriggerEtlRequest",
    "TriggerEtlResponse",
]
