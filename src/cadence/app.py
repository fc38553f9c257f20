"""Composition root. Wires the database, execution engine and notifier into the scheduler."""

from __future__ import annotations

import asyncio
from typing import Any

from cadence.caching.service import TtlCache
from cadence.errors import ValidationError
from cadence.execution.http_engine import HttpExecutionEngine
from cadence.infrastructure.clock import Clock, SystemClock
from cadence.infrastructure.config import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_FAILURES,
    BACKOFF_MAX_SECONDS,
    EXECUTION_ENGINE_TOKEN,
    EXECUTION_ENGINE_URL,
    GMAIL_CONFIG_DIR,
    NOTIFICATION_SENDER,
    SCHEDULER_POLL_INTERVAL,
    SchedulerSettings,
)
from cadence.infrastructure.database import AppDatabase, database
from cadence.infrastructure.logger import logger
from cadence.infrastructure.poll_loop import PollLoop
from cadence.notifications.gmail import GmailTransport, LogTransport
from cadence.scheduling.dispatcher import Dispatcher, ExecutionEngine
from cadence.scheduling.notifier import FailureNotifier, NotificationTransport
from cadence.scheduling.recurrence import BackoffPolicy
from cadence.scheduling.schedule_service import ScheduleManager
from cadence.scheduling.scheduler import SchedulerDependencies, run_tick, start_scheduler_loop


def default_engine() -> ExecutionEngine:
    if not EXECUTION_ENGINE_URL:
        raise ValidationError("EXECUTION_ENGINE_URL is not configured", field="EXECUTION_ENGINE_URL")
    return HttpExecutionEngine(EXECUTION_ENGINE_URL, token=EXECUTION_ENGINE_TOKEN or None)


def default_transport() -> NotificationTransport:
    if GMAIL_CONFIG_DIR:
        return GmailTransport(GMAIL_CONFIG_DIR, NOTIFICATION_SENDER)
    logger.warning("GMAIL_CONFIG_DIR not set, failure notifications will only be logged")
    return LogTransport()


class Application:
    """Owns the database and builds the services on top of it."""

    def __init__(self, db: AppDatabase = database, clock: Clock | None = None) -> None:
        self._db = db
        self.clock = clock or SystemClock()
        self._scheduler_handle: PollLoop | None = None

    def open(self) -> None:
        if not self._db.is_open:
            self._db.init()

    def close(self) -> None:
        self._db.close()

    def schedule_manager(self) -> ScheduleManager:
        backoff = BackoffPolicy.from_settings(BACKOFF_BASE_SECONDS, BACKOFF_MAX_SECONDS, BACKOFF_MAX_FAILURES)
        return ScheduleManager(self._db.schedule_repo, clock=self.clock, backoff=backoff)

    def cache(self) -> TtlCache:
        return TtlCache(self._db.cache_repo, clock=self.clock)

    def scheduler_dependencies(
        self,
        engine: ExecutionEngine | None = None,
        transport: NotificationTransport | None = None,
        settings: SchedulerSettings | None = None,
    ) -> SchedulerDependencies:
        settings = settings or SchedulerSettings()
        return SchedulerDependencies(
            schedule_manager=self.schedule_manager(),
            dispatcher=Dispatcher(engine or default_engine(), timeout_s=settings.dispatch_timeout),
            notifier=FailureNotifier(transport or default_transport()),
            settings=settings,
        )

    async def tick(self, deps: SchedulerDependencies | None = None) -> dict[str, Any]:
        """Run one scheduler tick and return {executed, results}."""
        tick = await run_tick(deps or self.scheduler_dependencies())
        return tick.to_dict()

    async def serve(self, interval_s: float = SCHEDULER_POLL_INTERVAL, stop: asyncio.Event | None = None) -> None:
        """Tick every interval_s until `stop` is set."""
        stop = stop or asyncio.Event()
        self._scheduler_handle = start_scheduler_loop(self.scheduler_dependencies(), interval_s)
        try:
            await stop.wait()
        finally:
            await self._scheduler_handle.stop()
            self._scheduler_handle = None
