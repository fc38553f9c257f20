"""Tests for database initialization and schema."""

import sqlite3

import pytest

from cadence.errors import StoreError
from cadence.infrastructure.database import AppDatabase, create_schema, store_errors


class TestAppDatabase:
    def test_init_creates_schema(self, db):
        tables = db.db.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name").fetchall()
        table_names = [row[0] for row in tables]
        assert "schedules" in table_names
        assert "schedule_runs" in table_names
        assert "cache_entries" in table_names

    def test_schedules_table_has_claim_and_failure_columns(self, db):
        columns = {row["name"] for row in db.db.execute("PRAGMA table_info(schedules)").fetchall()}
        assert {"version", "claimed_until", "consecutive_failures", "last_error"} <= columns

    def test_fresh_schedule_row_defaults(self, db):
        db.db.execute(
            "INSERT INTO schedules (id, workflow_id, name, next_run_at, created_at) VALUES (?, ?, ?, ?, ?)",
            ("s-1", "wf-1", "Raw", "2024-06-01T12:00:00.000000+00:00", "2024-06-01T12:00:00.000000+00:00"),
        )
        row = db.db.execute("SELECT * FROM schedules WHERE id = 's-1'").fetchone()
        assert row["version"] == 0
        assert row["consecutive_failures"] == 0
        assert row["claimed_until"] is None

    def test_schema_is_idempotent(self, db):
        create_schema(db.db)
        create_schema(db.db)

    def test_repos_initialized(self, db):
        assert db.schedule_repo is not None
        assert db.cache_repo is not None

    def test_file_database(self, tmp_path):
        app_db = AppDatabase()
        app_db.init(tmp_path / "nested" / "cadence.db")
        assert app_db.is_open
        assert (tmp_path / "nested" / "cadence.db").exists()
        app_db.close()
        assert not app_db.is_open


class TestStoreErrors:
    def test_wraps_sqlite_errors(self):
        with pytest.raises(StoreError, match="list schedules failed"):
            with store_errors("list schedules"):
                raise sqlite3.OperationalError("database is locked")

    def test_repository_failure_surfaces_as_store_error(self, db):
        db.db.execute("DROP TABLE schedules")
        with pytest.raises(StoreError):
            db.schedule_repo.list_active()
