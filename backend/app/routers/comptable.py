"""Endpoints to upload declaration batches and start their ETL processing."""

from __future__ import annotations

from typing import NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..dependencies import get_job_dispatcher, get_object_store
from ..models import FileType
from ..security import CallerIdentity, get_current_caller
from ..services import (
    ComptableUploadService,
    EtlTriggerService,
    UploadedSpreadsheet,
    detect_file_type,
    list_periods,
    list_processing_periods,
)
from ..services.errors import ComptableError, InvalidFileTypeError
from ..services.etl_dispatch import JobDispatcher
from ..services.storage import ObjectStore

router = APIRouter()


def raise_http_error(exc: ComptableError) -> NoReturn:
    raise HTTPException(status_code=exc.http_status, detail=exc.to_detail()) from exc


def _to_spreadsheet(file_type: FileType, upload: UploadFile) -> UploadedSpreadsheet:
    return UploadedSpreadsheet(
        file_type=file_type,
        filename=upload.filename or "",
        content_type=upload.content_type or "",
        content=upload.file.read(),
    )


def _collect_uploads(
    named: dict[FileType, Optional[UploadFile]],
    extra: Optional[list[UploadFile]],
) -> list[UploadedSpreadsheet]:
    uploads = [
        _to_spreadsheet(file_type, upload)
        for file_type, upload in named.items()
        if upload is not None
    ]
    for upload in extra or []:
        detected = detect_file_type(upload.filename or "")
        if detected is None:
            raise InvalidFileTypeError(
                f"Impossible de déterminer le type du fichier {upload.filename}",
                context={"file_name": upload.filename},
            )
        uploads.append(_to_spreadsheet(detected, upload))
    return uploads


@router.post(
    "/upload",
    response_model=schemas.BatchUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_batch(
    client_id: UUID = Form(...),
    grand_livre_comptes: Optional[UploadFile] = File(None, alias="GRAND_LIVRE_COMPTES"),
    grand_livre_tiers: Optional[UploadFile] = File(None, alias="GRAND_LIVRE_TIERS"),
    plan_comptes: Optional[UploadFile] = File(None, alias="PLAN_COMPTES"),
    plan_tiers: Optional[UploadFile] = File(None, alias="PLAN_TIERS"),
    code_journal: Optional[UploadFile] = File(None, alias="CODE_JOURNAL"),
    files: Optional[list[UploadFile]] = File(None, description="Files categorised by name"),
    db: Session = Depends(get_db),
    object_store: ObjectStore = Depends(get_object_store),
    caller: CallerIdentity = Depends(get_current_caller),
) -> schemas.BatchUploadResponse:
    """Store the five accounting exports of a period and create it as PENDING."""

    named = {
        FileType.GRAND_LIVRE_COMPTES: grand_livre_comptes,
        FileType.GRAND_LIVRE_TIERS: grand_livre_tiers,
        FileType.PLAN_COMPTES: plan_comptes,
        FileType.PLAN_TIERS: plan_tiers,
        FileType.CODE_JOURNAL: code_journal,
    }
    try:
        uploads = _collect_uploads(named, files)
        result = ComptableUploadService(db, object_store).assemble_batch(
            client_id,
            uploads,
            organization_id=caller.organization_id,
            performed_by=caller.username,
        )
    except ComptableError as exc:
        raise_http_error(exc)

    return schemas.BatchUploadResponse(
        batch_id=result.batch_id,
        period=schemas.PeriodBounds(
            start=result.period.period_start, end=result.period.period_end
        ),
        status=result.period.status,
        storage_prefix=result.storage_prefix,
        backup_prefix=result.backup_prefix,
        files=result.files,
    )


@router.post("/trigger-etl", response_model=schemas.TriggerEtlResponse)
def trigger_etl(
    payload: schemas.TriggerEtlRequest,
    db: Session = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_job_dispatcher),
    object_store: ObjectStore = Depends(get_object_store),
    caller: CallerIdentity = Depends(get_current_caller),
) -> schemas.TriggerEtlResponse:
    """Start the ETL run of an uploaded batch."""

    service = EtlTriggerService(db, dispatcher, bucket_name=object_store.bucket_name)
    try:
        result = service.trigger(
            payload.batch_id,
            organization_id=caller.organization_id,
            performed_by=caller.username,
        )
    except ComptableError as exc:
        raise_http_error(exc)

    return schemas.TriggerEtlResponse(
        batch_id=result.period.batch_id,
        dag_run_id=result.dag_run_id,
        status=result.period.status,
        period=schemas.PeriodBounds(
            start=result.period.period_start, end=result.period.period_end
        ),
        storage_prefix=result.storage_prefix,
    )


@router.get("/trigger-etl", response_model=schemas.ProcessingPeriodListResponse)
def get_processing_periods(
    client_id: Optional[UUID] = Query(None, description="Only periods of this client"),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_caller),
) -> schemas.ProcessingPeriodListResponse:
    """Return the periods waiting for, or running in, the ETL."""

    periods = list_processing_periods(
        db, organization_id=caller.organization_id, client_id=client_id
    )
    return schemas.ProcessingPeriodListResponse(periods=periods)


@router.get("/periods", response_model=schemas.PeriodListResponse)
def get_periods(
    client_id: Optional[UUID] = Query(None, description="Only periods of this client"),
    skip: int = Query(0, ge=0, description="Number of periods to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of periods to return"),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_current_caller),
) -> schemas.PeriodListResponse:
    items, total = list_periods(
        db,
        organization_id=caller.organization_id,
        client_id=client_id,
        skip=skip,
        limit=limit,
    )
    return schemas.PeriodListResponse(items=items, total=total, limit=limit, skip=skip)
