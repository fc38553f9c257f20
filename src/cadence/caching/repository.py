"""Cache entry persistence. One row per cache_key; hit counting is a single SQL increment."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from cadence.caching.types import CacheEntry, CacheStats
from cadence.infrastructure.clock import from_db, to_db
from cadence.infrastructure.database import store_errors
from cadence.payload import Payload


class CacheRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def get_entry(self, cache_key: str) -> CacheEntry | None:
        with store_errors("get cache entry"):
            row = self._db.execute("SELECT * FROM cache_entries WHERE cache_key = ?", (cache_key,)).fetchone()
        if not row:
            return None
        return self._row_to_entry(row)

    def touch_if_fresh(self, cache_key: str, now: datetime) -> bool:
        """Count a hit only if the entry is unexpired at `now`. Returns False for missing or stale rows."""
        with store_errors("record cache hit"):
            result = self._db.execute(
                """UPDATE cache_entries
                   SET hit_count = hit_count + 1, last_accessed = ?
                   WHERE cache_key = ? AND expires_at > ?""",
                (to_db(now), cache_key, to_db(now)),
            )
            self._db.commit()
        return result.rowcount > 0

    def upsert(self, cache_key: str, cache_type: str, data: Payload, expires_at: datetime, now: datetime) -> None:
        """Insert or overwrite in place. hit_count survives overwrites and starts at 0 for new keys."""
        with store_errors("set cache entry"):
            self._db.execute(
                """INSERT INTO cache_entries
                   (cache_key, cache_type, cached_data, expires_at, hit_count, last_accessed, created_at)
                   VALUES (?, ?, ?, ?, 0, ?, ?)
                   ON CONFLICT(cache_key) DO UPDATE SET
                       cache_type = excluded.cache_type,
                       cached_data = excluded.cached_data,
                       expires_at = excluded.expires_at,
                       last_accessed = excluded.last_accessed""",
                (cache_key, cache_type, data.dumps(), to_db(expires_at), to_db(now), to_db(now)),
            )
            self._db.commit()

    def delete_expired(self, now: datetime) -> int:
        with store_errors("sweep cache"):
            result = self._db.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (to_db(now),))
            self._db.commit()
        return result.rowcount

    def stats(self, now: datetime) -> CacheStats:
        with store_errors("cache stats"):
            row = self._db.execute(
                """SELECT COUNT(*) AS entries,
                          COALESCE(SUM(CASE WHEN expires_at <= ? THEN 1 ELSE 0 END), 0) AS expired,
                          COALESCE(SUM(hit_count), 0) AS total_hits
                   FROM cache_entries""",
                (to_db(now),),
            ).fetchone()
        return CacheStats(entries=row["entries"], expired=row["expired"], total_hits=row["total_hits"])

    def _row_to_entry(self, row: sqlite3.Row) -> CacheEntry:
        return CacheEntry(
            cache_key=row["cache_key"],
            cache_type=row["cache_type"],
            cached_data=Payload.loads(row["cached_data"]),
            expires_at=from_db(row["expires_at"]),
            hit_count=row["hit_count"],
            last_accessed=from_db(row["last_accessed"]),
            created_at=from_db(row["created_at"]),
        )
