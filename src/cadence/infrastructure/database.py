"""SQLite database schema and AppDatabase composition root."""

from __future__ import annotations

import contextlib
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from cadence.errors import StoreError
from cadence.infrastructure.config import DB_PATH
from cadence.infrastructure.logger import logger

if TYPE_CHECKING:
    from cadence.caching.repository import CacheRepository
    from cadence.scheduling.repository import ScheduleRepository


def create_schema(db: sqlite3.Connection) -> None:
    """Create all tables and indexes. Safe to call multiple times (IF NOT EXISTS)."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS schedules (
            id TEXT PRIMARY KEY,
            workflow_id TEXT NOT NULL,
            name TEXT NOT NULL,
            schedule_type TEXT NOT NULL DEFAULT 'workflow',
            frequency TEXT NOT NULL DEFAULT 'daily',
            next_run_at TEXT NOT NULL,
            last_run_at TEXT,
            inputs TEXT,
            notification_emails TEXT NOT NULL DEFAULT '[]',
            notification_on_failure INTEGER NOT NULL DEFAULT 1,
            is_active INTEGER NOT NULL DEFAULT 1,
            run_count INTEGER NOT NULL DEFAULT 0,
            success_count INTEGER NOT NULL DEFAULT 0,
            consecutive_failures INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            version INTEGER NOT NULL DEFAULT 0,
            claimed_until TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_schedules_active ON schedules(is_active);

        CREATE TABLE IF NOT EXISTS schedule_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            schedule_id TEXT NOT NULL,
            run_at TEXT NOT NULL,
            duration_ms INTEGER NOT NULL,
            status TEXT NOT NULL,
            error_kind TEXT,
            error TEXT,
            result TEXT,
            FOREIGN KEY (schedule_id) REFERENCES schedules(id)
        );
        CREATE INDEX IF NOT EXISTS idx_schedule_runs ON schedule_runs(schedule_id, run_at);

        CREATE TABLE IF NOT EXISTS cache_entries (
            cache_key TEXT PRIMARY KEY,
            cache_type TEXT NOT NULL DEFAULT '',
            cached_data TEXT,
            expires_at TEXT NOT NULL,
            hit_count INTEGER NOT NULL DEFAULT 0,
            last_accessed TEXT,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at);
    """)


@contextlib.contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise sqlite failures as StoreError so callers see one persistence error type."""
    try:
        yield
    except sqlite3.Error as err:
        logger.error("Store operation failed", operation=operation, error=str(err))
        raise StoreError(f"{operation} failed: {err}") from err


class AppDatabase:
    """Composition root that initializes the DB and exposes repositories."""

    def __init__(self) -> None:
        self._db: sqlite3.Connection | None = None
        # Repositories are set after init
        self.schedule_repo: ScheduleRepository | None = None  # type: ignore[assignment]
        self.cache_repo: CacheRepository | None = None  # type: ignore[assignment]

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @property
    def db(self) -> sqlite3.Connection:
        assert self._db is not None, "Database not initialized. Call init() first."
        return self._db

    def init(self, db_path: Path = DB_PATH) -> None:
        """Open (or create) the database file."""
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(db_path))
        self._db.row_factory = sqlite3.Row
        self._init_repos()
        logger.debug("Database opened", path=str(db_path))

    def _init_test(self) -> None:
        """For tests only. Creates a fresh in-memory database."""
        self._db = sqlite3.connect(":memory:")
        self._db.row_factory = sqlite3.Row
        self._init_repos()

    def _init_repos(self) -> None:
        assert self._db is not None
        create_schema(self._db)

        # Import here to avoid circular imports
        from cadence.caching.repository import CacheRepository
        from cadence.scheduling.repository import ScheduleRepository

        self.schedule_repo = ScheduleRepository(self._db)
        self.cache_repo = CacheRepository(self._db)

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None


# Singleton instance
database = AppDatabase()
