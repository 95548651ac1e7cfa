"""Debounced and periodic background re-analysis."""

import asyncio
from typing import Awaitable, Callable, Optional, Set

from ..logging_config import get_logger

logger = get_logger(__name__)


class AnalysisScheduler:
    """Runs ``callback`` after a quiet period and on a fixed interval.

    Each ``schedule()`` call cancels the pending debounce timer and starts a
    new one, so a burst of records triggers a single run. A run that already
    started is never cancelled by a later ``schedule()``.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        debounce_seconds: float = 5.0,
        interval_seconds: float = 3600.0,
    ):
        self.callback = callback
        self.debounce_seconds = debounce_seconds
        self.interval_seconds = interval_seconds
        self.run_count = 0
        self._pending: Optional[asyncio.Task] = None
        self._periodic: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def is_running_periodic(self) -> bool:
        return self._periodic is not None and not self._periodic.done()

    def schedule(self) -> bool:
        """(Re)start the debounce timer. Returns False outside an event loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; background analysis not scheduled")
            return False

        if self.is_pending:
            self._pending.cancel()
        self._pending = self._track(loop.create_task(self._debounced()))
        return True

    def start_periodic(self) -> None:
        if self.is_running_periodic:
            return
        self._periodic = self._track(asyncio.get_running_loop().create_task(self._periodic_loop()))
        logger.info("Periodic analysis started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the timer, the periodic loop and any in-flight run."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending = None
        self._periodic = None

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._pending = None
        await self._run("debounce")

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self._run("periodic")

    async def _run(self, trigger: str) -> None:
        try:
            await self.callback()
            self.run_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Background analysis failed", trigger=trigger, error=str(e))

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
