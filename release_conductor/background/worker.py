# release_conductor/background/worker.py
"""
In-process scheduler worker.

Runs ReleaseScheduler.tick() on a fixed interval until stopped. A failing
tick is logged and the loop carries on; cancellation ends the loop.
"""

import asyncio
import logging

from release_conductor.orchestration.scheduler import ReleaseScheduler, TickResult

logger = logging.getLogger(__name__)


class SchedulerWorker:
    """
    Periodic driver for the scheduler loop.

    Features:
        - Ticks immediately on start, then every `interval_seconds`
        - An in-flight tick is cancelled on stop; the interrupted task is
          failed as transient and the tick releases its lease
        - Keeps the last TickResult for inspection
    """

    def __init__(self, scheduler: ReleaseScheduler, interval_seconds: float = 60.0) -> None:
        self._scheduler = scheduler
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._last_result: TickResult | None = None
        self._ticks = 0
        logger.info(f"Initialized SchedulerWorker (interval={interval_seconds}s)")

    @property
    def last_result(self) -> TickResult | None:
        return self._last_result

    @property
    def ticks(self) -> int:
        """Number of completed ticks."""
        return self._ticks

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the worker loop as an asyncio task."""
        if self._task is not None:
            logger.warning("Worker already started")
            return

        self._task = asyncio.create_task(self._run_loop())
        logger.info("Scheduler worker started")

    async def stop(self) -> None:
        """Cancel the worker task and wait for it to finish."""
        if self._task is None:
            logger.warning("Worker not running")
            return

        logger.info("Stopping scheduler worker...")
        self._task.cancel()

        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Worker task cancelled")

        self._task = None
        logger.info("Scheduler worker stopped")

    async def _run_loop(self) -> None:
        logger.info("Worker loop started")
        try:
            while True:
                try:
                    self._last_result = await self._scheduler.tick()
                    self._ticks += 1
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Scheduler tick failed: {e}", exc_info=True)

                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            logger.info("Worker loop cancelled")
            raise
