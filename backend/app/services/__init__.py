"""Service layer encapsulating the accounting batch workflow for API routers."""

from .comptable_uploads import (
    BatchAssemblyResult,
    ComptableUploadService,
    UploadedSpreadsheet,
)
from .errors import ComptableError
from .etl_dispatch import (
    AirflowJobDispatcher,
    ConsoleJobDispatcher,
    DispatchError,
    EtlJobRequest,
    JobDispatcher,
    build_job_dispatcher_from_env,
)
from .etl_trigger import (
    EtlTriggerResult,
    EtlTriggerService,
    list_periods,
    list_processing_periods,
)
from .file_retry import FileRetryService
from .file_type_detection import detect_file_type
from .period_extraction import ExtractedPeriod, extract_period
from .period_overlap import PeriodOverlapService, intervals_overlap
from .period_reconciliation import periods_match, reconcile_ledger_periods
from .storage import (
    InMemoryObjectStore,
    LocalObjectStore,
    ObjectStore,
    S3ObjectStore,
    build_object_store_from_env,
)

__all__ = [
    "BatchAssemblyResult",
    "ComptableUploadService",
    "UploadedSpreadsheet",
    "ComptableError",
    "AirflowJobDispatcher",
    "ConsoleJobDispatcher",
    "DispatchError",
    "EtlJobRequest",
    "JobDispatcher",
    "build_job_dispatcher_from_env",
    "EtlTriggerResult",
    "EtlTriggerService",
    "list_periods",
    "list_processing_periods",
    "FileRetryService",
    "detect_file_type",
    "ExtractedPeriod",
    "extract_period",
    "PeriodOverlapService",
    "intervals_overlap",
    "periods_match",
    "reconcile_ledger_periods",
    "InMemoryObjectStore",
    "LocalObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "build_object_store_from_env",
]
