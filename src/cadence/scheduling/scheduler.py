"""Scheduler tick: claim due schedules and dispatch them with bounded fan-out."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

from cadence.errors import CadenceError
from cadence.infrastructure.config import SCHEDULER_POLL_INTERVAL, SchedulerSettings
from cadence.infrastructure.logger import logger
from cadence.infrastructure.poll_loop import PollLoop, start_poll_loop
from cadence.scheduling.dispatcher import Dispatcher
from cadence.scheduling.notifier import FailureNotifier
from cadence.scheduling.schedule_service import ScheduleManager
from cadence.scheduling.types import DispatchFailure, Schedule, ScheduleResult, TickResult


class SchedulerDependencies:
    def __init__(
        self,
        schedule_manager: ScheduleManager,
        dispatcher: Dispatcher,
        notifier: FailureNotifier,
        settings: SchedulerSettings | None = None,
    ) -> None:
        self.schedule_manager = schedule_manager
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.settings = settings or SchedulerSettings()


async def run_schedule(schedule: Schedule, now: datetime, deps: SchedulerDependencies) -> ScheduleResult:
    """Dispatch one schedule, record the outcome, and alert on failure."""
    outcome = await deps.dispatcher.dispatch(schedule)

    try:
        deps.schedule_manager.record_outcome(schedule, outcome, now)
    except CadenceError as err:
        logger.exception("Outcome not recorded", schedule_id=schedule.id)
        if isinstance(outcome, DispatchFailure):
            await deps.notifier.notify(schedule, outcome)
            return ScheduleResult(schedule_id=schedule.id, status="failed", error=outcome.error)
        return ScheduleResult(schedule_id=schedule.id, status="failed", error=f"Outcome not recorded: {err}")

    if isinstance(outcome, DispatchFailure):
        await deps.notifier.notify(schedule, outcome)
        return ScheduleResult(schedule_id=schedule.id, status="failed", error=outcome.error)
    return ScheduleResult(schedule_id=schedule.id, status="success")


def _claim(schedule: Schedule, deps: SchedulerDependencies) -> bool:
    """Take the lease just before dispatching, so it runs from when the work starts."""
    manager = deps.schedule_manager
    try:
        if manager.claim(schedule, manager.clock.now(), timedelta(seconds=deps.settings.claim_ttl)):
            return True
        logger.info("Schedule already claimed, skipping", schedule_id=schedule.id)
    except CadenceError:
        logger.exception("Claim failed, skipping", schedule_id=schedule.id)
    return False


async def run_tick(deps: SchedulerDependencies) -> TickResult:
    """Process every currently due schedule once.

    Only a failure while listing schedules propagates; per-schedule errors are
    returned as failed results. Schedules another tick claimed first are left
    out of the result.
    """
    now = deps.schedule_manager.clock.now()
    settings = deps.settings

    due = deps.schedule_manager.select_due(now, skip_claimed=settings.claim_enabled)
    # One dispatch per schedule per tick.
    due = list({s.id: s for s in due}.values())
    if not due:
        logger.debug("No due schedules")
        return TickResult()

    logger.info("Found due schedules", count=len(due))
    semaphore = asyncio.Semaphore(settings.max_concurrency)

    async def guarded(schedule: Schedule) -> ScheduleResult | None:
        async with semaphore:
            if settings.claim_enabled and not _claim(schedule, deps):
                return None
            try:
                return await run_schedule(schedule, now, deps)
            except Exception as err:
                logger.exception("Schedule processing failed", schedule_id=schedule.id)
                return ScheduleResult(schedule_id=schedule.id, status="failed", error=str(err))

    results = [r for r in await asyncio.gather(*(guarded(s) for s in due)) if r is not None]
    tick = TickResult(executed=len(results), results=results)
    logger.info(
        "Scheduler tick complete",
        executed=tick.executed,
        failed=sum(1 for r in tick.results if r.status == "failed"),
    )
    return tick


def start_scheduler_loop(deps: SchedulerDependencies, interval_s: float = SCHEDULER_POLL_INTERVAL) -> PollLoop:
    """Run a tick every interval_s seconds until stopped."""

    async def poll() -> None:
        await run_tick(deps)

    return start_poll_loop("Scheduler", interval_s, poll)
