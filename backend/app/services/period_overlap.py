"""Detect accounting periods that share at least one day."""

from __future__ import annotations

from datetime import date
from typing import Collection, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models
from .errors import PeriodOverlapError
from .french_dates import format_french_date


def intervals_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Inclusive overlap test; intervals touching on one day overlap."""

    return start_a <= end_b and end_a >= start_b


class PeriodOverlapService:
    """Queries keeping the periods of a client from overlapping."""

    @staticmethod
    def find_overlapping(
        db: Session,
        *,
        client_id: UUID,
        start: date,
        end: date,
        statuses: Collection[models.ProcessingStatus],
        exclude_period_id: Optional[UUID] = None,
    ) -> Optional[models.ComptablePeriod]:
        """Return the earliest period of ``client_id`` overlapping ``[start, end]``."""

        if not statuses:
            return None

        query = db.query(models.ComptablePeriod).filter(
            models.ComptablePeriod.client_id == client_id,
            models.ComptablePeriod.status.in_(list(statuses)),
            models.ComptablePeriod.period_start <= end,
            models.ComptablePeriod.period_end >= start,
        )
        if exclude_period_id is not None:
            query = query.filter(models.ComptablePeriod.id != exclude_period_id)

        return query.order_by(
            models.ComptablePeriod.period_start.asc(),
            models.ComptablePeriod.created_at.asc(),
        ).first()

    @staticmethod
    def ensure_no_overlap(
        db: Session,
        *,
        client_id: UUID,
        start: date,
        end: date,
        statuses: Collection[models.ProcessingStatus],
        exclude_period_id: Optional[UUID] = None,
    ) -> None:
        conflict = PeriodOverlapService.find_overlapping(
            db,
            client_id=client_id,
            start=start,
            end=end,
            statuses=statuses,
            exclude_period_id=exclude_period_id,
        )
        if conflict is None:
            return

        raise PeriodOverlapError(
            (
                "La période du {start} au {end} chevauche la période du "
                "{other_start} au {other_end} ({status})"
            ).format(
                start=format_french_date(start),
                end=format_french_date(end),
                other_start=format_french_date(conflict.period_start),
                other_end=format_french_date(conflict.period_end),
                status=conflict.status.value,
            ),
            context={
                "conflicting_period": {
                    "batch_id": str(conflict.batch_id),
                    "start": conflict.period_start.isoformat(),
                    "end": conflict.period_end.isoformat(),
                    "status": conflict.status.value,
                }
            },
        )


__all__ = ["intervals_overlap", "PeriodOverlapService"]
