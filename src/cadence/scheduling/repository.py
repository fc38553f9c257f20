"""Schedule CRUD, conditional claiming, outcome writes, and run logging."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any

from cadence.errors import NotFoundError
from cadence.infrastructure.clock import from_db, to_db
from cadence.infrastructure.database import store_errors
from cadence.payload import Payload
from cadence.scheduling.types import Schedule, ScheduleRun

_UPDATABLE_FIELDS = {
    "workflow_id",
    "name",
    "schedule_type",
    "frequency",
    "next_run_at",
    "last_run_at",
    "inputs",
    "notification_emails",
    "notification_on_failure",
    "is_active",
    "last_error",
    "claimed_until",
    "updated_at",
}


def _to_column(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_db(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Payload):
        return value.dumps()
    if isinstance(value, list):
        return json.dumps(value)
    return value


class ScheduleRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def create(self, schedule: Schedule) -> None:
        with store_errors("create schedule"):
            self._db.execute(
                """INSERT INTO schedules
                   (id, workflow_id, name, schedule_type, frequency, next_run_at, last_run_at, inputs,
                    notification_emails, notification_on_failure, is_active, run_count, success_count,
                    consecutive_failures, last_error, version, claimed_until, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    schedule.id, schedule.workflow_id, schedule.name, schedule.schedule_type,
                    schedule.frequency, to_db(schedule.next_run_at), to_db(schedule.last_run_at),
                    schedule.inputs.dumps(), json.dumps(schedule.notification_emails),
                    int(schedule.notification_on_failure), int(schedule.is_active),
                    schedule.run_count, schedule.success_count, schedule.consecutive_failures,
                    schedule.last_error, schedule.version, to_db(schedule.claimed_until),
                    to_db(schedule.created_at), to_db(schedule.updated_at),
                ),
            )
            self._db.commit()

    def get(self, id: str) -> Schedule | None:
        with store_errors("get schedule"):
            row = self._db.execute("SELECT * FROM schedules WHERE id = ?", (id,)).fetchone()
        if not row:
            return None
        return self._row_to_schedule(row)

    def list_schedules(self, is_active: bool | None = None) -> list[Schedule]:
        """List schedules, optionally filtered by equality on is_active."""
        with store_errors("list schedules"):
            if is_active is None:
                rows = self._db.execute("SELECT * FROM schedules ORDER BY created_at DESC").fetchall()
            else:
                rows = self._db.execute(
                    "SELECT * FROM schedules WHERE is_active = ? ORDER BY created_at DESC", (int(is_active),)
                ).fetchall()
        return [self._row_to_schedule(row) for row in rows]

    def list_active(self) -> list[Schedule]:
        return self.list_schedules(is_active=True)

    def update(self, id: str, **updates: Any) -> Schedule:
        """Partial update. Every write bumps version so pending claims on the old version fail."""
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update schedule fields: {', '.join(sorted(unknown))}")

        fields = [f"{key} = ?" for key in updates]
        values = [_to_column(value) for value in updates.values()]
        fields.append("version = version + 1")
        values.append(id)
        with store_errors("update schedule"):
            result = self._db.execute(f"UPDATE schedules SET {', '.join(fields)} WHERE id = ?", values)
            self._db.commit()
        if result.rowcount == 0:
            raise NotFoundError("Schedule", id)
        schedule = self.get(id)
        assert schedule is not None
        return schedule

    def claim(self, id: str, expected_version: int, claimed_until: datetime) -> bool:
        """Reserve a schedule for one dispatcher. Fails if anyone wrote the row since it was read."""
        with store_errors("claim schedule"):
            result = self._db.execute(
                """UPDATE schedules
                   SET claimed_until = ?, version = version + 1
                   WHERE id = ? AND version = ? AND is_active = 1""",
                (to_db(claimed_until), id, expected_version),
            )
            self._db.commit()
        return result.rowcount > 0

    def record_success(self, id: str, ran_at: datetime, next_run_at: datetime) -> Schedule:
        with store_errors("record schedule success"):
            result = self._db.execute(
                """UPDATE schedules
                   SET last_run_at = ?, next_run_at = ?,
                       run_count = run_count + 1, success_count = success_count + 1,
                       consecutive_failures = 0, last_error = NULL, claimed_until = NULL,
                       version = version + 1, updated_at = ?
                   WHERE id = ?""",
                (to_db(ran_at), to_db(next_run_at), to_db(ran_at), id),
            )
            self._db.commit()
        return self._require(id, result.rowcount)

    def record_failure(
        self,
        id: str,
        failed_at: datetime,
        error: str,
        next_run_at: datetime | None = None,
        deactivate: bool = False,
    ) -> Schedule:
        """Count a failed attempt. next_run_at stays as-is unless a new one is given."""
        with store_errors("record schedule failure"):
            result = self._db.execute(
                """UPDATE schedules
                   SET run_count = run_count + 1,
                       consecutive_failures = consecutive_failures + 1,
                       last_error = ?,
                       next_run_at = COALESCE(?, next_run_at),
                       is_active = CASE WHEN ? THEN 0 ELSE is_active END,
                       claimed_until = NULL, version = version + 1, updated_at = ?
                   WHERE id = ?""",
                (error, to_db(next_run_at), int(deactivate), to_db(failed_at), id),
            )
            self._db.commit()
        return self._require(id, result.rowcount)

    def log_run(self, run: ScheduleRun) -> None:
        with store_errors("log schedule run"):
            self._db.execute(
                """INSERT INTO schedule_runs (schedule_id, run_at, duration_ms, status, error_kind, error, result)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (run.schedule_id, to_db(run.run_at), run.duration_ms, run.status, run.error_kind, run.error, run.result),
            )
            self._db.commit()

    def get_runs(self, schedule_id: str, limit: int = 50) -> list[ScheduleRun]:
        with store_errors("get schedule runs"):
            rows = self._db.execute(
                "SELECT * FROM schedule_runs WHERE schedule_id = ? ORDER BY id DESC LIMIT ?",
                (schedule_id, limit),
            ).fetchall()
        return [
            ScheduleRun(
                schedule_id=row["schedule_id"],
                run_at=from_db(row["run_at"]),
                duration_ms=row["duration_ms"],
                status=row["status"],
                error_kind=row["error_kind"],
                error=row["error"],
                result=row["result"],
            )
            for row in rows
        ]

    def _require(self, id: str, rowcount: int) -> Schedule:
        if rowcount == 0:
            raise NotFoundError("Schedule", id)
        schedule = self.get(id)
        assert schedule is not None
        return schedule

    def _row_to_schedule(self, row: sqlite3.Row) -> Schedule:
        return Schedule(
            id=row["id"],
            workflow_id=row["workflow_id"],
            name=row["name"],
            schedule_type=row["schedule_type"],
            frequency=row["frequency"],
            next_run_at=from_db(row["next_run_at"]),
            last_run_at=from_db(row["last_run_at"]),
            inputs=Payload.loads(row["inputs"]),
            notification_emails=json.loads(row["notification_emails"] or "[]"),
            notification_on_failure=bool(row["notification_on_failure"]),
            is_active=bool(row["is_active"]),
            run_count=row["run_count"],
            success_count=row["success_count"],
            consecutive_failures=row["consecutive_failures"],
            last_error=row["last_error"],
            version=row["version"],
            claimed_until=from_db(row["claimed_until"]),
            created_at=from_db(row["created_at"]),
            updated_at=from_db(row["updated_at"]),
        )
