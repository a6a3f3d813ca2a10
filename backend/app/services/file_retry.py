"""Retry the storage check of a single accounting file."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models
from .errors import FileNotRetryableError, NotFoundError, StorageDependencyError
from .storage import ObjectNotFoundError, ObjectStore, StorageError

LOGGER = logging.getLogger(__name__)


class FileRetryService:
    """Move a file in ERROR back to SUCCESS once its object is confirmed in storage."""

    def __init__(self, db: Session, object_store: ObjectStore) -> None:
        self.db = db
        self.object_store = object_store

    def _get_file(self, file_id: UUID, organization_id: UUID) -> models.ComptableFile:
        record = (
            self.db.query(models.ComptableFile)
            .join(models.Client, models.Client.id == models.ComptableFile.client_id)
            .filter(
                models.ComptableFile.id == file_id,
                models.Client.organization_id == organization_id,
            )
            .first()
        )
        if record is None:
            raise NotFoundError("Fichier non trouvé", context={"file_id": str(file_id)})
        return record

    def _record(
        self,
        record: models.ComptableFile,
        action: models.FileHistoryAction,
        details: str,
        performed_by: Optional[str],
    ) -> None:
        self.db.add(
            models.FileHistory(
                file_id=record.id,
                file_name=record.file_name,
                action=action,
                details=details,
                performed_by=performed_by,
            )
        )

    def retry_file(
        self,
        file_id: UUID,
        *,
        organization_id: UUID,
        performed_by: Optional[str] = None,
    ) -> models.ComptableFile:
        record = self._get_file(file_id, organization_id)
        if record.status != models.FileStatus.ERROR:
            raise FileNotRetryableError(
                context={"file_id": str(file_id), "status": record.status.value}
            )

        record.status = models.FileStatus.PROCESSING
        record.error_message = None
        self.db.commit()

        try:
            self.object_store.head(record.storage_key)
        except StorageError as exc:
            if isinstance(exc, ObjectNotFoundError):
                message = f"Objet introuvable dans le stockage : {record.storage_key}"
            else:
                message = f"Stockage indisponible : {exc}"
            LOGGER.warning("Retry of file %s failed: %s", file_id, message)
            record.status = models.FileStatus.ERROR
            record.error_message = message
            self._record(record, models.FileHistoryAction.RETRY_FAILED, message, performed_by)
            self.db.commit()
            raise StorageDependencyError(
                "Échec de la relance du fichier",
                context={"file_id": str(file_id), "details": message},
            ) from exc

        record.status = models.FileStatus.SUCCESS
        record.error_message = None
        record.processed_at = datetime.now(timezone.utc)
        self._record(
            record,
            models.FileHistoryAction.RETRY_SUCCESS,
            "Fichier relancé avec succès",
            performed_by,
        )
        self.db.commit()
        self.db.refresh(record)
        LOGGER.info("File %s recovered after retry", file_id)
        return record


__all__ = ["FileRetryService"]
