"""Scheduling domain types."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from cadence.errors import DispatchErrorKind
from cadence.payload import Payload


class Schedule(BaseModel):
    id: str
    workflow_id: str
    name: str
    schedule_type: str = "workflow"
    # Unknown labels are kept as given and treated as daily.
    frequency: str = "daily"
    next_run_at: datetime
    last_run_at: datetime | None = None
    inputs: Payload = Field(default_factory=Payload)
    notification_emails: list[str] = Field(default_factory=list)
    notification_on_failure: bool = True
    is_active: bool = True
    run_count: int = 0
    success_count: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    version: int = 0
    claimed_until: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.is_active and self.next_run_at <= now

    def is_claimed(self, now: datetime) -> bool:
        return self.claimed_until is not None and self.claimed_until > now


class CreateScheduleRequest(BaseModel):
    workflow_id: str | None = None
    name: str | None = None
    schedule_type: str = "workflow"
    frequency: str = "daily"
    inputs: Any = None
    notification_emails: list[str] = Field(default_factory=list)
    notification_on_failure: bool = True


class ScheduleRun(BaseModel):
    schedule_id: str
    run_at: datetime
    duration_ms: int
    status: Literal["success", "failed"]
    error_kind: DispatchErrorKind | None = None
    error: str | None = None
    result: str | None = None


class EngineResponse(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None


class DispatchSuccess(BaseModel):
    result: Any = None
    duration_ms: int = 0


class DispatchFailure(BaseModel):
    error: str
    kind: DispatchErrorKind = "engine"
    duration_ms: int = 0


DispatchOutcome = DispatchSuccess | DispatchFailure


class ScheduleResult(BaseModel):
    schedule_id: str
    status: Literal["success", "failed"]
    error: str | None = None


class TickResult(BaseModel):
    executed: int = 0
    results: list[ScheduleResult] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "executed": self.executed,
            "results": [r.model_dump(exclude_none=True) for r in self.results],
        }
