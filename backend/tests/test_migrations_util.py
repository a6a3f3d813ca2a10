from __future__ import annotations

import os

import pytest
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect, text

from backend.app import migrations
from backend.app.migrations import (
    DEFAULT_LOCK_TIMEOUT,
    alembic_config,
    migration_lock,
    run_database_migrations,
)

SCHEMA_TABLES = {"organizations", "clients", "comptable_periods", "comptable_files", "file_history"}


def _version(url: str) -> str:
    engine = create_engine(url)
    try:
        with engine.connect() as connection:
            return connection.scalar(text("SELECT version_num FROM alembic_version"))
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'declarations.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setattr(migrations, "LOCK_PATH", tmp_path / "migration.lock")
    return url


def test_fresh_database_is_upgraded_to_head(sqlite_url) -> None:
    head = ScriptDirectory.from_config(alembic_config(sqlite_url)).get_current_head()

    assert run_database_migrations() == head

    engine = create_engine(sqlite_url)
    tables = set(inspect(engine).get_table_names())
    engine.dispose()
    assert SCHEMA_TABLES <= tables
    assert _version(sqlite_url) == head


def test_second_run_keeps_schema_at_head(sqlite_url) -> None:
    head = run_database_migrations()
    engine = create_engine(sqlite_url)
    with engine.begin() as connection:
        connection.execute(
            text("INSERT INTO organizations (id, name) VALUES (:id, :name)"),
            {"id": "0" * 32, "name": "Cabinet"},
        )
    engine.dispose()

    assert run_database_migrations() == head

    engine = create_engine(sqlite_url)
    with engine.connect() as connection:
        assert connection.scalar(text("SELECT count(*) FROM organizations")) == 1
    engine.dispose()
    assert _version(sqlite_url) == head


@pytest.mark.parametrize("raw", ["soon", "0", "-5"])
def test_invalid_lock_timeout_falls_back_to_default(monkeypatch, raw) -> None:
    monkeypatch.setenv("ALEMBIC_MIGRATION_LOCK_TIMEOUT", raw)

    assert migrations._read_lock_timeout() == DEFAULT_LOCK_TIMEOUT


def test_lock_timeout_is_read_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("ALEMBIC_MIGRATION_LOCK_TIMEOUT", "2.5")

    assert migrations._read_lock_timeout() == 2.5


@pytest.mark.skipif(os.name != "posix", reason="flock semantics")
def test_held_lock_times_out(tmp_path) -> None:
    lock_path = tmp_path / "migration.lock"

    with migration_lock(lock_path, timeout=1):
        with pytest.raises(TimeoutError):
            with migration_lock(lock_path, timeout=0.3):
                pass

    with migration_lock(lock_path, timeout=0.3):
        pass
