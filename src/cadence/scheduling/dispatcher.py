"""Execution dispatcher: one engine call per due schedule, classified as success or failure."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol, runtime_checkable

from cadence.errors import DispatchError
from cadence.infrastructure.logger import logger
from cadence.scheduling.types import (
    DispatchFailure,
    DispatchOutcome,
    DispatchSuccess,
    EngineResponse,
    Schedule,
)


@runtime_checkable
class ExecutionEngine(Protocol):
    async def invoke(self, workflow_id: str, inputs: Any) -> EngineResponse: ...


class Dispatcher:
    """Invokes the execution engine. Never raises: every error becomes a DispatchFailure."""

    def __init__(self, engine: ExecutionEngine, timeout_s: float | None = None) -> None:
        self._engine = engine
        self._timeout = timeout_s

    async def dispatch(self, schedule: Schedule) -> DispatchOutcome:
        start_time = time.monotonic()
        log = logger.bind(schedule_id=schedule.id, workflow_id=schedule.workflow_id)
        log.info("Dispatching schedule")

        try:
            call = self._engine.invoke(schedule.workflow_id, schedule.inputs.data)
            if self._timeout is not None:
                response = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                response = await call
            if not isinstance(response, EngineResponse):
                response = EngineResponse.model_validate(response)
        except TimeoutError:
            duration_ms = _elapsed_ms(start_time)
            log.error("Dispatch timed out", timeout_s=self._timeout, duration_ms=duration_ms)
            return DispatchFailure(
                error=f"Execution timed out after {self._timeout}s",
                kind="timeout",
                duration_ms=duration_ms,
            )
        except DispatchError as err:
            duration_ms = _elapsed_ms(start_time)
            log.warning("Dispatch failed", error=str(err), kind=err.kind, duration_ms=duration_ms)
            return DispatchFailure(error=str(err), kind=err.kind, duration_ms=duration_ms)
        except Exception as err:
            duration_ms = _elapsed_ms(start_time)
            log.exception("Dispatch raised", duration_ms=duration_ms)
            return DispatchFailure(error=str(err) or type(err).__name__, kind="exception", duration_ms=duration_ms)

        duration_ms = _elapsed_ms(start_time)
        if not response.success:
            error = response.error or "Unknown error"
            log.warning("Dispatch failed", error=error, duration_ms=duration_ms)
            return DispatchFailure(error=error, kind="engine", duration_ms=duration_ms)

        log.info("Dispatch succeeded", duration_ms=duration_ms)
        return DispatchSuccess(result=response.data, duration_ms=duration_ms)


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
