"""Schedule manager: creation, admin lifecycle, due selection, and outcome recording."""

from __future__ import annotations

import json
import random
import string
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from cadence.errors import NotFoundError, StoreError, ValidationError
from cadence.infrastructure.clock import Clock, SystemClock
from cadence.infrastructure.logger import logger
from cadence.payload import Payload
from cadence.scheduling.recurrence import BackoffPolicy, next_run
from cadence.scheduling.repository import ScheduleRepository
from cadence.scheduling.types import (
    CreateScheduleRequest,
    DispatchFailure,
    DispatchOutcome,
    Schedule,
    ScheduleRun,
)

RESULT_SUMMARY_LIMIT = 500


class ScheduleManager:
    def __init__(
        self,
        schedule_repo: ScheduleRepository,
        clock: Clock | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self._repo = schedule_repo
        self._clock = clock or SystemClock()
        self._backoff = backoff

    @property
    def clock(self) -> Clock:
        return self._clock

    # --- CRUD ---

    def create(self, request: CreateScheduleRequest | dict[str, Any]) -> Schedule:
        """Validate a scheduling request and persist it. The first run is one period from now."""
        if isinstance(request, dict):
            try:
                request = CreateScheduleRequest.model_validate(request)
            except PydanticValidationError as err:
                first = err.errors()[0]
                field = ".".join(str(part) for part in first["loc"]) or None
                raise ValidationError(f"Invalid schedule request: {field}: {first['msg']}", field=field) from err

        if not request.workflow_id:
            raise ValidationError("workflow_id is required", field="workflow_id")
        if not request.name:
            raise ValidationError("name is required", field="name")
        emails = _normalize_emails(request.notification_emails)

        now = self._clock.now()
        rand = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
        schedule = Schedule(
            id=f"sched-{int(now.timestamp())}-{rand}",
            workflow_id=request.workflow_id,
            name=request.name,
            schedule_type=request.schedule_type,
            frequency=request.frequency,
            next_run_at=next_run(request.frequency, now),
            inputs=Payload.wrap(request.inputs),
            notification_emails=emails,
            notification_on_failure=request.notification_on_failure,
            is_active=True,
            run_count=0,
            success_count=0,
            created_at=now,
            updated_at=now,
        )
        self._repo.create(schedule)
        logger.info(
            "Schedule created",
            schedule_id=schedule.id,
            workflow_id=schedule.workflow_id,
            frequency=schedule.frequency,
            next_run_at=schedule.next_run_at.isoformat(),
        )
        return schedule

    def get_by_id(self, id: str) -> Schedule | None:
        return self._repo.get(id)

    def get(self, id: str) -> Schedule:
        schedule = self._repo.get(id)
        if not schedule:
            raise NotFoundError("Schedule", id)
        return schedule

    def get_all(self) -> list[Schedule]:
        return self._repo.list_schedules()

    def get_active(self) -> list[Schedule]:
        return self._repo.list_active()

    def get_runs(self, id: str, limit: int = 50) -> list[ScheduleRun]:
        self.get(id)
        return self._repo.get_runs(id, limit)

    # --- Lifecycle ---

    def deactivate(self, id: str) -> Schedule:
        schedule = self._repo.update(id, is_active=False, claimed_until=None, updated_at=self._clock.now())
        logger.info("Schedule deactivated", schedule_id=id)
        return schedule

    def activate(self, id: str) -> Schedule:
        schedule = self._repo.update(id, is_active=True, updated_at=self._clock.now())
        logger.info("Schedule activated", schedule_id=id)
        return schedule

    # --- Scheduling ---

    def select_due(self, now: datetime, skip_claimed: bool = True) -> list[Schedule]:
        """Active schedules whose next_run_at is at or before now."""
        due = [s for s in self._repo.list_active() if s.is_due(now)]
        if skip_claimed:
            due = [s for s in due if not s.is_claimed(now)]
        return due

    def claim(self, schedule: Schedule, now: datetime, ttl: timedelta) -> bool:
        """Conditionally reserve a schedule read at `schedule.version` until now + ttl."""
        return self._repo.claim(schedule.id, schedule.version, now + ttl)

    def record_outcome(self, schedule: Schedule, outcome: DispatchOutcome, now: datetime) -> Schedule:
        """Persist the outcome on the schedule, then append it to the run log.

        The schedule update is the outcome of record. A run log write that fails
        afterwards is logged and does not undo or contradict it.
        """
        if isinstance(outcome, DispatchFailure):
            updated = self._record_failure(schedule, outcome, now)
            self._log_run(ScheduleRun(
                schedule_id=schedule.id,
                run_at=now,
                duration_ms=outcome.duration_ms,
                status="failed",
                error_kind=outcome.kind,
                error=outcome.error,
            ))
            return updated

        updated = self._repo.record_success(schedule.id, now, next_run(schedule.frequency, now))
        self._log_run(ScheduleRun(
            schedule_id=schedule.id,
            run_at=now,
            duration_ms=outcome.duration_ms,
            status="success",
            result=_summarize(outcome.result),
        ))
        return updated

    def _log_run(self, run: ScheduleRun) -> None:
        try:
            self._repo.log_run(run)
        except StoreError:
            logger.exception("Run log entry not written", schedule_id=run.schedule_id, status=run.status)

    def _record_failure(self, schedule: Schedule, outcome: DispatchFailure, now: datetime) -> Schedule:
        if not self._backoff:
            return self._repo.record_failure(schedule.id, now, outcome.error)

        failures = schedule.consecutive_failures + 1
        deactivate = self._backoff.should_deactivate(failures)
        retry_at = now + self._backoff.delay_for(failures)
        if deactivate:
            logger.warning("Schedule deactivated after repeated failures", schedule_id=schedule.id, failures=failures)
        return self._repo.record_failure(schedule.id, now, outcome.error, next_run_at=retry_at, deactivate=deactivate)


def _normalize_emails(emails: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for raw in emails:
        email = raw.strip()
        if not email:
            continue
        if "@" not in email:
            raise ValidationError(f"Invalid notification email: {raw}", field="notification_emails")
        seen.setdefault(email, None)
    return list(seen)


def _summarize(result: Any) -> str | None:
    if result is None:
        return None
    text = result if isinstance(result, str) else json.dumps(result, default=str)
    return text[:RESULT_SUMMARY_LIMIT]
