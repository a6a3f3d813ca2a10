from dataclasses import replace
from datetime import date

import pytest

from backend.app import models
from backend.app.services.comptable_uploads import ComptableUploadService
from backend.app.services.errors import (
    IncompleteBatchError,
    InvalidFileTypeError,
    NotFoundError,
    PeriodExtractionError,
    PeriodMismatchError,
    PeriodOverlapError,
    StorageDependencyError,
)
from backend.app.services.storage import InMemoryObjectStore, StorageError


class FailingStore(InMemoryObjectStore):
    """Accept the first ``accepted`` uploads then fail."""

    def __init__(self, accepted: int) -> None:
        super().__init__(bucket_name="failing")
        self.accepted = accepted

    def put(self, key, data, content_type):
        if self.accepted <= 0:
            raise StorageError("S3 indisponible")
        self.accepted -= 1
        return super().put(key, data, content_type)


def _assemble(db_session, store, customer, files, **kwargs):
    return ComptableUploadService(db_session, store).assemble_batch(
        customer.id,
        files,
        organization_id=customer.organization_id,
        performed_by=kwargs.pop("performed_by", "operateur@cabinet.example"),
        **kwargs,
    )


def test_upload_stores_files_and_creates_pending_period(
    db_session, object_store, customer, batch_factory
):
    result = _assemble(db_session, object_store, customer, batch_factory())

    prefix = f"{customer.id}/declaration/2024/periode-20240101-20241231/"
    assert result.storage_prefix == prefix
    assert result.backup_prefix is None
    assert result.period.status is models.ProcessingStatus.PENDING
    assert result.period.batch_id == result.batch_id
    assert (result.period.period_start, result.period.period_end) == (
        date(2024, 1, 1),
        date(2024, 12, 31),
    )
    assert result.period.year == 2024

    assert object_store.list(prefix) == sorted(
        f"{prefix}20241231_{file_type.value}_ACME.xlsx" for file_type in models.REQUIRED_FILE_TYPES
    )

    files = db_session.query(models.ComptableFile).filter_by(batch_id=result.batch_id).all()
    assert len(files) == 5
    assert {item.file_type for item in files} == set(models.REQUIRED_FILE_TYPES)
    for item in files:
        assert item.status is models.FileStatus.SUCCESS
        assert item.processing_status is models.ProcessingStatus.PENDING
        assert item.period_id == result.period.id
        assert item.file_year == 2024
        assert item.processed_at is not None
        assert item.uploaded_by == "operateur@cabinet.example"

    history = db_session.query(models.FileHistory).all()
    assert len(history) == 5
    assert {entry.action for entry in history} == {models.FileHistoryAction.UPLOAD_COMPTABLE}
    assert history[0].details == (
        "Fichier comptable uploadé - Période : 01/01/2024 au 31/12/2024"
    )


def test_overlap_with_pending_period_is_allowed(
    db_session, object_store, customer, batch_factory, period_factory
):
    period_factory(date(2024, 1, 1), date(2024, 12, 31), models.ProcessingStatus.PENDING)

    result = _assemble(db_session, object_store, customer, batch_factory())

    assert result.period.status is models.ProcessingStatus.PENDING
    assert db_session.query(models.ComptablePeriod).filter_by(client_id=customer.id).count() == 2


def test_overlap_with_completed_period_is_rejected(
    db_session, object_store, customer, batch_factory, period_factory
):
    period_factory(date(2024, 1, 1), date(2024, 12, 31), models.ProcessingStatus.COMPLETED)

    with pytest.raises(PeriodOverlapError) as excinfo:
        _assemble(
            db_session, object_store, customer, batch_factory("01/06/2024", "31/05/2025")
        )

    assert excinfo.value.context["conflicting_period"]["status"] == "COMPLETED"
    assert object_store.list("") == []


def test_completed_period_of_another_client_does_not_conflict(
    db_session, object_store, customer, foreign_customer, batch_factory, period_factory
):
    period_factory(
        date(2024, 1, 1),
        date(2024, 12, 31),
        models.ProcessingStatus.COMPLETED,
        owner=foreign_customer,
    )

    result = _assemble(db_session, object_store, customer, batch_factory())

    assert result.period.client_id == customer.id


def test_mismatching_ledgers_are_rejected(db_session, object_store, customer, batch_factory):
    files = batch_factory(tiers_end="30/06/2024")

    with pytest.raises(PeriodMismatchError) as excinfo:
        _assemble(db_session, object_store, customer, files)

    assert excinfo.value.context["grand_livre_tiers"] == {
        "start": "2024-01-01",
        "end": "2024-06-30",
    }
    assert db_session.query(models.ComptablePeriod).count() == 0


def test_missing_file_type_is_reported(db_session, object_store, customer, batch_factory):
    files = [item for item in batch_factory() if item.file_type is not models.FileType.CODE_JOURNAL]

    with pytest.raises(IncompleteBatchError) as excinfo:
        _assemble(db_session, object_store, customer, files)

    assert excinfo.value.context == {"missing": ["CODE_JOURNAL"], "duplicated": []}


def test_duplicated_file_type_is_reported(db_session, object_store, customer, batch_factory):
    files = batch_factory()
    files.append(files[2])

    with pytest.raises(IncompleteBatchError) as excinfo:
        _assemble(db_session, object_store, customer, files)

    assert excinfo.value.context["duplicated"] == ["PLAN_COMPTES"]


def test_non_excel_mime_type_is_rejected(db_session, object_store, customer, batch_factory):
    files = batch_factory(content_type="text/csv")

    with pytest.raises(InvalidFileTypeError) as excinfo:
        _assemble(db_session, object_store, customer, files)

    assert excinfo.value.http_status == 400
    assert "doit être un fichier Excel" in excinfo.value.message


def test_ledger_without_period_header_is_rejected(
    db_session, object_store, customer, batch_factory, workbook_factory
):
    files = batch_factory()
    files[0] = replace(
        files[0],
        content=workbook_factory([["Grand livre des comptes"], ["Compte", "Solde"]]),
    )

    with pytest.raises(PeriodExtractionError):
        _assemble(db_session, object_store, customer, files)


def test_client_of_another_organization_is_not_found(
    db_session, object_store, customer, foreign_customer, batch_factory
):
    with pytest.raises(NotFoundError) as excinfo:
        ComptableUploadService(db_session, object_store).assemble_batch(
            foreign_customer.id,
            batch_factory(),
            organization_id=customer.organization_id,
        )

    assert excinfo.value.message == "Client non trouvé"


def test_reupload_backs_up_existing_objects(db_session, object_store, customer, batch_factory):
    first = _assemble(db_session, object_store, customer, batch_factory())
    prefix = first.storage_prefix
    object_store.put(prefix + "success/report.json", b"{}", "application/json")

    second = _assemble(db_session, object_store, customer, batch_factory())

    assert second.backup_prefix is not None
    assert second.backup_prefix.startswith(prefix + "backup/")
    backed_up = object_store.list(second.backup_prefix)
    assert sorted(key.rsplit("/", 1)[-1] for key in backed_up) == sorted(
        f"20241231_{file_type.value}_ACME.xlsx" for file_type in models.REQUIRED_FILE_TYPES
    )
    assert second.batch_id != first.batch_id


def test_backup_failure_does_not_block_upload(db_session, customer, batch_factory):
    class NoListStore(InMemoryObjectStore):
        def list(self, prefix):
            raise StorageError("listing denied")

    store = NoListStore()

    result = _assemble(db_session, store, customer, batch_factory())

    assert result.backup_prefix is None
    assert result.period.status is models.ProcessingStatus.PENDING


def test_storage_failure_records_error_and_creates_no_period(
    db_session, customer, batch_factory
):
    store = FailingStore(accepted=2)

    with pytest.raises(StorageDependencyError) as excinfo:
        _assemble(db_session, store, customer, batch_factory())

    error = excinfo.value
    assert error.http_status == 500
    assert error.context["file_type"] == "PLAN_COMPTES"
    assert error.context["uploaded_files"] == [
        "20241231_GRAND_LIVRE_COMPTES_ACME.xlsx",
        "20241231_GRAND_LIVRE_TIERS_ACME.xlsx",
    ]

    assert db_session.query(models.ComptablePeriod).count() == 0
    failed = (
        db_session.query(models.ComptableFile)
        .filter_by(file_type=models.FileType.PLAN_COMPTES)
        .one()
    )
    assert failed.status is models.FileStatus.ERROR
    assert failed.processing_status is models.ProcessingStatus.ERROR
    assert failed.error_message == "S3 indisponible"
    assert failed.period_id is None

    actions = [entry.action for entry in db_session.query(models.FileHistory).filter_by(file_id=failed.id)]
    assert actions == [models.FileHistoryAction.UPLOAD_FAILED]
