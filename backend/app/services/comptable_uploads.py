"""Assemble declaration batches from the five accounting exports of a client."""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models
from ..models import REQUIRED_FILE_TYPES
from .errors import (
    IncompleteBatchError,
    InvalidFileTypeError,
    NotFoundError,
    StorageDependencyError,
)
from .french_dates import format_french_date
from .period_extraction import ExtractedPeriod, extract_period
from .period_overlap import PeriodOverlapService
from .period_reconciliation import reconcile_ledger_periods
from .storage import ObjectStore, StorageError
from .storage_layout import (
    basename,
    build_backup_prefix,
    build_object_key,
    build_period_prefix,
    is_backup_candidate,
)

LOGGER = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)


@dataclass(frozen=True)
class UploadedSpreadsheet:
    """One file received for a batch, already tagged with its category."""

    file_type: models.FileType
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class BatchAssemblyResult:
    batch_id: UUID
    period: models.ComptablePeriod
    files: list[models.ComptableFile]
    storage_prefix: str
    backup_prefix: Optional[str] = None


def get_client_for_organization(
    db: Session, client_id: UUID, organization_id: UUID
) -> models.Client:
    client = (
        db.query(models.Client)
        .filter(
            models.Client.id == client_id,
            models.Client.organization_id == organization_id,
        )
        .first()
    )
    if client is None:
        raise NotFoundError("Client non trouvé", context={"client_id": str(client_id)})
    return client


class ComptableUploadService:
    """Validate, store and record the five files of a declaration batch."""

    def __init__(self, db: Session, object_store: ObjectStore) -> None:
        self.db = db
        self.object_store = object_store

    @staticmethod
    def ensure_complete(files: Sequence[UploadedSpreadsheet]) -> dict[models.FileType, UploadedSpreadsheet]:
        """Return the files indexed by category when each category appears exactly once."""

        counts = Counter(item.file_type for item in files)
        missing = [file_type.value for file_type in REQUIRED_FILE_TYPES if counts[file_type] == 0]
        duplicated = [file_type.value for file_type in REQUIRED_FILE_TYPES if counts[file_type] > 1]
        if missing or duplicated:
            parts = []
            if missing:
                parts.append("fichiers manquants : " + ", ".join(missing))
            if duplicated:
                parts.append("types dupliqués : " + ", ".join(duplicated))
            raise IncompleteBatchError(
                "Le lot doit contenir exactement les 5 fichiers requis (" + " ; ".join(parts) + ")",
                context={"missing": missing, "duplicated": duplicated},
            )
        return {item.file_type: item for item in files}

    @staticmethod
    def ensure_spreadsheets(files: Iterable[UploadedSpreadsheet]) -> None:
        for item in files:
            if item.content_type not in ALLOWED_MIME_TYPES:
                raise InvalidFileTypeError(
                    f"Le fichier {item.filename} doit être un fichier Excel",
                    context={"file_name": item.filename, "content_type": item.content_type},
                )

    def backup_existing_objects(self, prefix: str) -> Optional[str]:
        """Copy the objects already stored under ``prefix`` to a timestamped folder.

        Failures are logged and ignored; the upload goes on without a backup.
        """

        try:
            keys = [key for key in self.object_store.list(prefix) if is_backup_candidate(key)]
            if not keys:
                return None
            backup_prefix = build_backup_prefix(prefix)
            for key in keys:
                self.object_store.copy(key, backup_prefix + basename(key))
        except StorageError as exc:
            LOGGER.warning("Backup of %s failed: %s", prefix, exc)
            return None

        LOGGER.info("Backed up %s object(s) from %s to %s", len(keys), prefix, backup_prefix)
        return backup_prefix

    def assemble_batch(
        self,
        client_id: UUID,
        files: Sequence[UploadedSpreadsheet],
        *,
        organization_id: UUID,
        performed_by: Optional[str] = None,
    ) -> BatchAssemblyResult:
        """Validate the five files, store them and create the pending period."""

        client = get_client_for_organization(self.db, client_id, organization_id)
        by_type = self.ensure_complete(files)
        self.ensure_spreadsheets(files)

        period = reconcile_ledger_periods(
            extract_period(by_type[models.FileType.GRAND_LIVRE_COMPTES].content),
            extract_period(by_type[models.FileType.GRAND_LIVRE_TIERS].content),
        )

        PeriodOverlapService.ensure_no_overlap(
            self.db,
            client_id=client.id,
            start=period.start,
            end=period.end,
            statuses=[models.ProcessingStatus.COMPLETED],
        )

        prefix = build_period_prefix(client.id, period.start, period.end)
        backup_prefix = self.backup_existing_objects(prefix)

        batch_id = uuid.uuid4()
        records = self._store_files(client, by_type, period, prefix, batch_id, performed_by)

        comptable_period = models.ComptablePeriod(
            client_id=client.id,
            period_start=period.start,
            period_end=period.end,
            year=period.year,
            batch_id=batch_id,
            status=models.ProcessingStatus.PENDING,
        )
        self.db.add(comptable_period)
        self.db.flush()
        for record in records:
            record.period_id = comptable_period.id
        self.db.commit()
        self.db.refresh(comptable_period)

        LOGGER.info(
            "Batch %s accepted for client %s (%s)", batch_id, client.id, period
        )
        return BatchAssemblyResult(
            batch_id=batch_id,
            period=comptable_period,
            files=records,
            storage_prefix=prefix,
            backup_prefix=backup_prefix,
        )

    def _store_files(
        self,
        client: models.Client,
        by_type: dict[models.FileType, UploadedSpreadsheet],
        period: ExtractedPeriod,
        prefix: str,
        batch_id: UUID,
        performed_by: Optional[str],
    ) -> list[models.ComptableFile]:
        records: list[models.ComptableFile] = []
        details = (
            "Fichier comptable uploadé - Période : "
            f"{format_french_date(period.start)} au {format_french_date(period.end)}"
        )

        for file_type in REQUIRED_FILE_TYPES:
            upload = by_type[file_type]
            key = build_object_key(prefix, period.end, file_type.value, client.name, upload.filename)
            record = models.ComptableFile(
                file_name=basename(key),
                file_type=file_type,
                file_year=period.year,
                storage_key=key,
                file_size=upload.size,
                mime_type=upload.content_type,
                batch_id=batch_id,
                client_id=client.id,
                uploaded_by=performed_by,
            )

            try:
                self.object_store.put(key, upload.content, upload.content_type)
            except StorageError as exc:
                LOGGER.error("Upload of %s failed for batch %s: %s", key, batch_id, exc)
                record.status = models.FileStatus.ERROR
                record.processing_status = models.ProcessingStatus.ERROR
                record.error_message = str(exc)
                self.db.add(record)
                self.db.flush()
                self.db.add(
                    models.FileHistory(
                        file_id=record.id,
                        file_name=record.file_name,
                        action=models.FileHistoryAction.UPLOAD_FAILED,
                        details=f"Échec de l'envoi : {exc}",
                        performed_by=performed_by,
                    )
                )
                self.db.commit()
                raise StorageDependencyError(
                    f"Erreur lors de l'envoi du fichier {upload.filename}",
                    context={
                        "batch_id": str(batch_id),
                        "file_type": file_type.value,
                        "uploaded_files": [item.file_name for item in records],
                    },
                ) from exc

            record.status = models.FileStatus.SUCCESS
            record.processing_status = models.ProcessingStatus.PENDING
            record.processed_at = datetime.now(timezone.utc)
            self.db.add(record)
            self.db.flush()
            self.db.add(
                models.FileHistory(
                    file_id=record.id,
                    file_name=record.file_name,
                    action=models.FileHistoryAction.UPLOAD_COMPTABLE,
                    details=details,
                    performed_by=performed_by,
                )
            )
            records.append(record)

        return records


__all__ = [
    "ALLOWED_MIME_TYPES",
    "UploadedSpreadsheet",
    "BatchAssemblyResult",
    "ComptableUploadService",
    "get_client_for_organization",
]
