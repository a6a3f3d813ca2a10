from __future__ import annotations

import base64
import os
import sys
import uuid
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Generator, Optional, Sequence

import pandas as pd
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["RUN_DB_MIGRATIONS"] = "0"

from backend.app import models
from backend.app.database import Base, get_db
from backend.app.dependencies import get_job_dispatcher, get_object_store
from backend.app.main import app
from backend.app.security import generate_password_hash
from backend.app.services.comptable_uploads import UploadedSpreadsheet
from backend.app.services.etl_dispatch import (
    DispatchError,
    DispatchResult,
    EtlJobRequest,
    JobDispatcher,
)
from backend.app.services.storage import InMemoryObjectStore

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
OPERATOR_ORGANIZATION_ID = uuid.UUID("6f1c2b8e-3d4a-4f5b-9c6d-7e8f9a0b1c2d")


@pytest.fixture(scope="session")
def security_settings() -> dict:
    password = "Op3rat0rS3cret!"

    os.environ["ADMIN_USERNAME"] = "operateur@cabinet.example"
    os.environ["ADMIN_ORGANIZATION_ID"] = str(OPERATOR_ORGANIZATION_ID)
    os.environ["ADMIN_JWT_SECRET"] = base64.urlsafe_b64encode(os.urandom(32)).decode()
    os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "60"
    os.environ["ADMIN_PASSWORD_HASH"] = generate_password_hash(password)

    return {
        "username": os.environ["ADMIN_USERNAME"],
        "password": password,
        "organization_id": OPERATOR_ORGANIZATION_ID,
    }


@pytest.fixture(scope="session", autouse=True)
def _ensure_security_settings(security_settings: dict) -> Generator[None, None, None]:
    yield


SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


class RecordingDispatcher(JobDispatcher):
    """Dispatcher double that records requests and hands out sequential run ids."""

    transport = "test"

    def __init__(self) -> None:
        self.requests: list[EtlJobRequest] = []
        self.error: Optional[Exception] = None
        self.before_return = None

    def dispatch(self, request: EtlJobRequest) -> DispatchResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.before_return is not None:
            self.before_return(request)
        return DispatchResult(run_id=f"manual__run_{len(self.requests)}", status_code=200)

    def fail_with(self, message: str = "Airflow indisponible") -> None:
        self.error = DispatchError(message)


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore(bucket_name="declarations-test")


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def organization(db_session: Session) -> models.Organization:
    org = models.Organization(id=OPERATOR_ORGANIZATION_ID, name="Cabinet Dupont")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture
def customer(db_session: Session, organization: models.Organization) -> models.Client:
    record = models.Client(organization_id=organization.id, name="ACME")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def foreign_customer(db_session: Session) -> models.Client:
    other = models.Organization(name="Cabinet Martin")
    db_session.add(other)
    db_session.flush()
    record = models.Client(organization_id=other.id, name="Globex")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def client(
    db_session: Session,
    security_settings: dict,
    object_store: InMemoryObjectStore,
    dispatcher: RecordingDispatcher,
) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_job_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        response = test_client.post(
            "/auth/token",
            json={
                "username": security_settings["username"],
                "password": security_settings["password"],
            },
        )
        assert response.status_code == 200
        token = response.json()["access_token"]
        test_client.headers.update({"Authorization": f"Bearer {token}"})
        yield test_client
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_object_store, None)
    app.dependency_overrides.pop(get_job_dispatcher, None)


def workbook_bytes(rows: Sequence[Sequence[object]]) -> bytes:
    """Write ``rows`` to the first sheet of an in-memory xlsx workbook."""

    buffer = BytesIO()
    pd.DataFrame(list(rows)).to_excel(buffer, index=False, header=False, engine="openpyxl")
    return buffer.getvalue()


def ledger_rows(start: str, end: str, title: str = "Grand livre des comptes") -> list[list[object]]:
    return [
        ["ACME SARL", None, None],
        [title, None, None],
        [f"Période du {start}", None, None],
        ["au", None, None],
        [end, None, None],
        ["Compte", "Libellé", "Solde"],
        ["401000", "Fournisseurs", 1250.5],
    ]


def ledger_bytes(start: str, end: str, title: str = "Grand livre des comptes") -> bytes:
    return workbook_bytes(ledger_rows(start, end, title))


def plain_sheet_bytes(label: str) -> bytes:
    return workbook_bytes([[label, None], ["Code", "Libellé"], ["401", "Fournisseurs"]])


def batch_files(
    start: str = "01/01/2024",
    end: str = "31/12/2024",
    *,
    tiers_start: Optional[str] = None,
    tiers_end: Optional[str] = None,
    content_type: str = XLSX_MIME,
) -> list[UploadedSpreadsheet]:
    """Return the five spreadsheets of a complete batch."""

    contents = {
        models.FileType.GRAND_LIVRE_COMPTES: ledger_bytes(start, end),
        models.FileType.GRAND_LIVRE_TIERS: ledger_bytes(
            tiers_start or start, tiers_end or end, "Grand livre des tiers"
        ),
        models.FileType.PLAN_COMPTES: plain_sheet_bytes("Plan comptable"),
        models.FileType.PLAN_TIERS: plain_sheet_bytes("Plan tiers"),
        models.FileType.CODE_JOURNAL: plain_sheet_bytes("Codes journaux"),
    }
    return [
        UploadedSpreadsheet(
            file_type=file_type,
            filename=f"{file_type.value.lower()}.xlsx",
            content_type=content_type,
            content=content,
        )
        for file_type, content in contents.items()
    ]


def multipart_files(items: Sequence[UploadedSpreadsheet]) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [
        (item.file_type.value, (item.filename, item.content, item.content_type)) for item in items
    ]


def make_period(
    db_session: Session,
    customer: models.Client,
    start: date,
    end: date,
    status: models.ProcessingStatus,
    *,
    with_files: bool = True,
    created_at: Optional[datetime] = None,
) -> models.ComptablePeriod:
    """Insert a period (and optionally its five stored files) directly in the database."""

    batch_id = uuid.uuid4()
    period = models.ComptablePeriod(
        client_id=customer.id,
        period_start=start,
        period_end=end,
        year=start.year,
        batch_id=batch_id,
        status=status,
    )
    if created_at is not None:
        period.created_at = created_at
    db_session.add(period)
    db_session.flush()
    if with_files:
        for file_type in models.REQUIRED_FILE_TYPES:
            db_session.add(
                models.ComptableFile(
                    file_name=f"{end:%Y%m%d}_{file_type.value}_{customer.name}.xlsx",
                    file_type=file_type,
                    file_year=start.year,
                    storage_key=f"{customer.id}/declaration/{start.year}/{file_type.value}.xlsx",
                    file_size=10,
                    mime_type=XLSX_MIME,
                    status=models.FileStatus.SUCCESS,
                    processing_status=models.ProcessingStatus.PENDING,
                    batch_id=batch_id,
                    period_id=period.id,
                    client_id=customer.id,
                )
            )
    db_session.commit()
    return period


@pytest.fixture
def workbook_factory():
    return workbook_bytes


@pytest.fixture
def ledger_factory():
    return ledger_bytes


@pytest.fixture
def batch_factory():
    return batch_files


@pytest.fixture
def as_multipart():
    return multipart_files


@pytest.fixture
def period_factory(db_session: Session, customer: models.Client):
    def factory(start: date, end: date, status: models.ProcessingStatus, **kwargs):
        return make_period(db_session, kwargs.pop("owner", customer), start, end, status, **kwargs)

    return factory
