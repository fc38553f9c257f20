"""Async interval loop used by the long-running `serve` mode."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from cadence.infrastructure.logger import logger


class PollLoop:
    """Calls fn, sleeps interval_s, repeats. Errors from fn are logged and the loop keeps going."""

    def __init__(self, name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> None:
        self._name = name
        self._interval = interval_s
        self._fn = fn
        self._task: asyncio.Task[None] | None = None
        self._stopped = False
        self.iterations = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._stopped = False
        self._task = asyncio.create_task(self._loop())
        logger.info(f"{self._name} loop started", interval_s=self._interval)

    async def stop(self) -> None:
        """Stop the loop and wait for the current iteration to be cancelled."""
        self._stopped = True
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"{self._name} loop stopped", iterations=self.iterations)

    async def _loop(self) -> None:
        while not self._stopped:
            try:
                await self._fn()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(f"Error in {self._name} loop")
            self.iterations += 1
            if not self._stopped:
                await asyncio.sleep(self._interval)


def start_poll_loop(name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> PollLoop:
    """Create and start a polling loop. Returns a handle to stop it."""
    loop = PollLoop(name, interval_s, fn)
    loop.start()
    return loop
