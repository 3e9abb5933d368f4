"""Interval scheduler owned by one sync engine.

Runs a callback on a fixed interval as a background asyncio task. The next
sleep only starts after the callback (and everything it awaits) returns,
so two runs never overlap. Stopping while the callback is running lets
that run finish; only the sleep is ever cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class IntervalScheduler:
    """Periodic background loop with explicit start/stop.

    Args:
        callback: Coroutine function run once per interval
        interval: Seconds to sleep between the end of one run and the next
        name: Used in log messages
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        name: str = "sync",
    ) -> None:
        self._callback = callback
        self._interval = interval
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._busy: asyncio.Task[Any] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Start the loop; a second call while running returns the same task."""
        if self._task is not None and not self._task.done():
            return self._task

        task = asyncio.create_task(self._loop())
        task.add_done_callback(self._log_exception)
        self._task = task
        logger.info("Scheduler %s started: every %.1fs", self._name, self._interval)
        return task

    def stop(self) -> None:
        """Stop scheduling new runs. A run in progress is not interrupted."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is self._busy:
            logger.debug("Scheduler %s stopping after the current run", self._name)
        else:
            task.cancel()
        logger.info("Scheduler %s stopped", self._name)

    async def aclose(self) -> None:
        """Stop and wait for the loop task (and any run in progress) to end."""
        task = self._task or self._busy
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _loop(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self._interval)
            if self._task is not me:
                break
            self._busy = me
            try:
                await self._callback()
            except Exception:
                logger.error("Scheduler %s run failed", self._name, exc_info=True)
            finally:
                if self._busy is me:
                    self._busy = None

    def _log_exception(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduler %s task raised unhandled exception: %s", self._name, exc)
