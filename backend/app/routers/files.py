"""Endpoints acting on a single stored accounting file."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..dependencies import get_object_store
from ..security import CallerIdentity, get_current_caller
from ..services import FileRetryService
from ..services.errors import ComptableError
from ..services.storage import ObjectStore
from .comptable import raise_http_error

router = APIRouter()


@router.put("/{file_id}/retry", response_model=schemas.FileRetryResponse)
def retry_file(
    file_id: UUID,
    db: Session = Depends(get_db),
    object_store: ObjectStore = Depends(get_object_store),
    caller: CallerIdentity = Depends(get_current_caller),
) -> schemas.FileRetryResponse:
    """Check again that a file in error is present in storage."""

    try:
        record = FileRetryService(db, object_store).retry_file(
            file_id,
            organization_id=caller.organization_id,
            performed_by=caller.username,
        )
    except ComptableError as exc:
        raise_http_error(exc)
    return schemas.FileRetryResponse(file=record)
