"""Error hierarchy shared by the accounting batch services.

Every error carries a machine readable ``kind``, the HTTP status the routers
should answer with, a user facing (French) message and an optional context
dictionary that is merged into the response detail.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


class ComptableError(RuntimeError):
    """Base class for every failure raised by the accounting services."""

    kind = "comptable_error"
    http_status = 500
    default_message = "Erreur interne"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.context: dict[str, Any] = dict(context or {})
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"kind": self.kind, "message": self.message}
        detail.update(self.context)
        return detail


class ComptableValidationError(ComptableError):
    kind = "validation_error"
    http_status = 400
    default_message = "Requête invalide"


class ParseError(ComptableValidationError):
    """Raised when a text does not contain a usable DD/MM/YY(YY) date."""

    kind = "parse_error"
    default_message = "Date introuvable ou invalide"


class PeriodExtractionError(ComptableValidationError):
    kind = "period_extraction_error"
    default_message = "Impossible d'extraire la période du fichier"


class InvalidFileTypeError(ComptableValidationError):
    kind = "invalid_file_type"
    default_message = "Type de fichier non autorisé"


class FileNotRetryableError(ComptableValidationError):
    kind = "file_not_retryable"
    default_message = "Seuls les fichiers en erreur peuvent être relancés"


class NotFoundError(ComptableError):
    kind = "not_found"
    http_status = 404
    default_message = "Ressource introuvable"


class ForbiddenError(ComptableError):
    kind = "forbidden"
    http_status = 403
    default_message = "Accès refusé"


class ConflictError(ComptableError):
    kind = "conflict"
    http_status = 409
    default_message = "Conflit avec l'état actuel"


class AlreadyProcessingError(ConflictError):
    kind = "already_processing"
    default_message = "Cette période est déjà en cours de traitement"


class AlreadyCompletedError(ConflictError):
    kind = "already_completed"
    default_message = "Cette période a déjà été traitée"


class PeriodOverlapError(ConflictError):
    kind = "period_overlap"
    default_message = "La période chevauche une période existante"


class PeriodMismatchError(ConflictError):
    kind = "period_mismatch"
    default_message = (
        "Les périodes du grand livre des comptes et du grand livre des tiers ne correspondent pas"
    )


class IncompleteBatchError(ConflictError):
    kind = "incomplete_batch"
    default_message = "Le lot doit contenir exactement les 5 fichiers requis"


class DependencyError(ComptableError):
    kind = "dependency_error"
    http_status = 500
    default_message = "Service externe indisponible"


class StorageDependencyError(DependencyError):
    kind = "storage_error"
    default_message = "Erreur lors de l'enregistrement des fichiers"


class ETLDispatchError(DependencyError):
    kind = "etl_dispatch_error"
    default_message = "Erreur lors du déclenchement du traitement ETL"


__all__ = [
    "ComptableError",
    "ComptableValidationError",
    "ParseError",
    "PeriodExtractionError",
    "InvalidFileTypeError",
    "FileNotRetryableError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
    "AlreadyProcessingError",
    "AlreadyCompletedError",
    "PeriodOverlapError",
    "PeriodMismatchError",
    "IncompleteBatchError",
    "DependencyError",
    "StorageDependencyError",
    "ETLDispatchError",
]
