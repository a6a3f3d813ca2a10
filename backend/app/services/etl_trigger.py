"""State machine moving an accounting period into ETL processing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, aliased, selectinload

from .. import models
from ..models import REQUIRED_FILE_TYPES
from .errors import (
    AlreadyCompletedError,
    AlreadyProcessingError,
    ETLDispatchError,
    ForbiddenError,
    IncompleteBatchError,
    NotFoundError,
    PeriodOverlapError,
)
from .etl_dispatch import DispatchError, EtlJobRequest, JobDispatcher
from .period_overlap import PeriodOverlapService
from .storage_layout import build_period_prefix

LOGGER = logging.getLogger(__name__)

TRIGGERABLE_STATUSES = (
    models.ProcessingStatus.PENDING,
    models.ProcessingStatus.VALIDATING,
    models.ProcessingStatus.ERROR,
)

IN_FLIGHT_STATUSES = (
    models.ProcessingStatus.PENDING,
    models.ProcessingStatus.VALIDATING,
    models.ProcessingStatus.PROCESSING,
)


@dataclass
class EtlTriggerResult:
    dag_run_id: str
    period: models.ComptablePeriod
    storage_prefix: str


class EtlTriggerService:
    """Guard, dispatch and record the PENDING to PROCESSING transition."""

    def __init__(self, db: Session, dispatcher: JobDispatcher, *, bucket_name: str = "") -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.bucket_name = bucket_name

    def _load_period(self, batch_id: UUID) -> models.ComptablePeriod:
        period = (
            self.db.query(models.ComptablePeriod)
            .filter(models.ComptablePeriod.batch_id == batch_id)
            .with_for_update()
            .first()
        )
        if period is None:
            raise NotFoundError(
                "Période comptable non trouvée", context={"batch_id": str(batch_id)}
            )
        return period

    def _ensure_complete_batch(self, period: models.ComptablePeriod) -> list[models.ComptableFile]:
        files = (
            self.db.query(models.ComptableFile)
            .filter(models.ComptableFile.batch_id == period.batch_id)
            .order_by(models.ComptableFile.created_at.asc())
            .all()
        )
        stored = [item for item in files if item.status == models.FileStatus.SUCCESS]
        if len(files) != len(REQUIRED_FILE_TYPES) or len(stored) != len(files):
            raise IncompleteBatchError(
                f"Nombre de fichiers invalide : {len(stored)}/{len(REQUIRED_FILE_TYPES)}",
                context={
                    "batch_id": str(period.batch_id),
                    "file_count": len(files),
                    "stored_count": len(stored),
                },
            )
        return files

    def _lock_client(self, period: models.ComptablePeriod) -> models.Client:
        """Lock the client row so triggers of one client's periods run one at a time."""

        return (
            self.db.query(models.Client)
            .filter(models.Client.id == period.client_id)
            .with_for_update()
            .one()
        )

    def _prepare(
        self, batch_id: UUID, organization_id: UUID
    ) -> tuple[models.ComptablePeriod, list[models.ComptableFile], EtlJobRequest]:
        period = self._load_period(batch_id)
        client = self._lock_client(period)
        if client.organization_id != organization_id:
            raise ForbiddenError("Accès non autorisé", context={"batch_id": str(batch_id)})

        if period.status == models.ProcessingStatus.PROCESSING:
            raise AlreadyProcessingError(
                context={"batch_id": str(batch_id), "status": period.status.value}
            )
        if period.status == models.ProcessingStatus.COMPLETED:
            raise AlreadyCompletedError(
                context={"batch_id": str(batch_id), "status": period.status.value}
            )

        PeriodOverlapService.ensure_no_overlap(
            self.db,
            client_id=period.client_id,
            start=period.period_start,
            end=period.period_end,
            statuses=[models.ProcessingStatus.PROCESSING],
            exclude_period_id=period.id,
        )

        files = self._ensure_complete_batch(period)
        request = EtlJobRequest(
            batch_id=str(period.batch_id),
            client_id=str(client.id),
            client_name=client.name,
            s3_prefix=build_period_prefix(client.id, period.period_start, period.period_end),
            s3_bucket=self.bucket_name,
        )
        return period, files, request

    def preview(self, batch_id: UUID, *, organization_id: UUID) -> EtlJobRequest:
        """Run every guard of :meth:`trigger` and return the request it would send.

        Nothing is dispatched and nothing is written.
        """

        _, _, request = self._prepare(batch_id, organization_id)
        return request

    def _claim(self, period: models.ComptablePeriod, run_id: str) -> bool:
        """Compare-and-set PROCESSING unless the status moved or an overlapping run started."""

        running = aliased(models.ComptablePeriod)
        overlapping_run = (
            select(running.id)
            .where(
                running.client_id == period.client_id,
                running.id != period.id,
                running.status == models.ProcessingStatus.PROCESSING,
                running.period_start <= period.period_end,
                running.period_end >= period.period_start,
            )
            .exists()
        )
        claimed = self.db.execute(
            update(models.ComptablePeriod)
            .where(
                models.ComptablePeriod.id == period.id,
                models.ComptablePeriod.status.in_(TRIGGERABLE_STATUSES),
                ~overlapping_run,
            )
            .values(
                status=models.ProcessingStatus.PROCESSING,
                dag_run_id=run_id,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return claimed.rowcount > 0

    def trigger(
        self,
        batch_id: UUID,
        *,
        organization_id: UUID,
        performed_by: Optional[str] = None,
    ) -> EtlTriggerResult:
        """Start the ETL for ``batch_id`` and mark its period PROCESSING."""

        period, files, request = self._prepare(batch_id, organization_id)

        try:
            result = self.dispatcher.dispatch(request)
        except DispatchError as exc:
            LOGGER.error("ETL dispatch failed for batch %s: %s", batch_id, exc)
            raise ETLDispatchError(
                "Erreur lors du déclenchement de l'ETL",
                context={"batch_id": str(batch_id), "details": str(exc)},
            ) from exc

        if not self._claim(period, result.run_id):
            LOGGER.warning(
                "Batch %s was not claimed; orchestrator run %s is a duplicate",
                batch_id,
                result.run_id,
            )
            try:
                PeriodOverlapService.ensure_no_overlap(
                    self.db,
                    client_id=period.client_id,
                    start=period.period_start,
                    end=period.period_end,
                    statuses=[models.ProcessingStatus.PROCESSING],
                    exclude_period_id=period.id,
                )
            except PeriodOverlapError as exc:
                exc.context["duplicate_run_id"] = result.run_id
                raise
            raise AlreadyProcessingError(
                context={"batch_id": str(batch_id), "duplicate_run_id": result.run_id}
            )

        for item in files:
            item.processing_status = models.ProcessingStatus.PROCESSING
            self.db.add(
                models.FileHistory(
                    file_id=item.id,
                    file_name=item.file_name,
                    action=models.FileHistoryAction.ETL_TRIGGERED,
                    details=f"Traitement ETL déclenché - DAG Run ID : {result.run_id}",
                    performed_by=performed_by,
                )
            )
        self.db.commit()
        self.db.refresh(period)

        LOGGER.info("Batch %s moved to PROCESSING (run %s)", batch_id, result.run_id)
        return EtlTriggerResult(
            dag_run_id=result.run_id, period=period, storage_prefix=request.s3_prefix
        )


def _organization_periods(db: Session, organization_id: UUID, client_id: Optional[UUID]):
    query = (
        db.query(models.ComptablePeriod)
        .join(models.Client, models.Client.id == models.ComptablePeriod.client_id)
        .filter(models.Client.organization_id == organization_id)
    )
    if client_id is not None:
        query = query.filter(models.ComptablePeriod.client_id == client_id)
    return query


def list_processing_periods(
    db: Session,
    *,
    organization_id: UUID,
    client_id: Optional[UUID] = None,
) -> list[models.ComptablePeriod]:
    """Periods of the organisation that are waiting for, or running in, the ETL."""

    return (
        _organization_periods(db, organization_id, client_id)
        .filter(models.ComptablePeriod.status.in_(IN_FLIGHT_STATUSES))
        .options(selectinload(models.ComptablePeriod.client))
        .order_by(models.ComptablePeriod.created_at.desc())
        .all()
    )


def list_periods(
    db: Session,
    *,
    organization_id: UUID,
    client_id: Optional[UUID] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[models.ComptablePeriod], int]:
    query = _organization_periods(db, organization_id, client_id)
    total = query.count()
    items = (
        query.options(
            selectinload(models.ComptablePeriod.client),
            selectinload(models.ComptablePeriod.files),
        )
        .order_by(models.ComptablePeriod.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return items, total


__all__ = [
    "TRIGGERABLE_STATUSES",
    "IN_FLIGHT_STATUSES",
    "EtlTriggerResult",
    "EtlTriggerService",
    "list_processing_periods",
    "list_periods",
]
