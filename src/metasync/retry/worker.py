"""Background worker that executes due retry jobs.

Polls DurableRetryExecutor.run_due on an asyncio task.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from metasync.config import DEFAULT_WORKER_POLL_SECONDS
from metasync.retry.executor import DurableRetryExecutor

logger = logging.getLogger(__name__)


class RetryWorker:
    """Background worker that runs due retry jobs."""

    def __init__(
        self,
        executor: DurableRetryExecutor,
        poll_interval: float = DEFAULT_WORKER_POLL_SECONDS,
    ) -> None:
        """Initialize worker.

        Args:
            executor: Executor whose due jobs are run.
            poll_interval: Seconds between polls.
        """
        self._executor = executor
        self._poll_interval = poll_interval
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning("Retry worker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("Retry worker started (poll every %.1fs)", self._poll_interval)

    async def stop(self) -> None:
        """Stop the worker."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Retry worker stopped")

    async def run_once(self) -> int:
        """Run due jobs once in a worker thread; returns the number executed."""
        return await asyncio.to_thread(self._executor.run_due)

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            try:
                executed = await self.run_once()
                if executed:
                    logger.debug("Retry worker executed %d jobs", executed)
            except Exception as e:
                logger.error("Error in retry worker poll loop: %s", e, exc_info=True)

            await asyncio.sleep(self._poll_interval)
