"""
Upload job retention sweeper.

Terminal upload jobs stay queryable for JOB_RETENTION_SECONDS and are then
removed. The in-memory job store needs this loop to actually drop them;
the Redis store expires keys on its own and sweeping is a no-op.

Usage:
    # Started by the FastAPI lifespan (parcelhub/main.py)
    sweeper = JobRetentionSweeper(job_store)
    sweeper.start()
    ...
    await sweeper.stop()
"""

import asyncio

from parcelhub.config import settings
from parcelhub.features.reconciliation.jobs.job_store import JobStore
from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 60


class JobRetentionSweeper:
    def __init__(self, job_store: JobStore, interval_seconds: float | None = None):
        self.job_store = job_store
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.JOB_SWEEP_INTERVAL_SECONDS
        )
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        removed = await self.job_store.sweep_expired()
        if removed:
            logger.info("Job retention sweep completed", removed=removed)
        return removed

    async def run_forever(self) -> None:
        logger.info("Job retention sweeper started", interval_seconds=self.interval_seconds)
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("Job retention sweeper stopped")
                raise
            except Exception as e:
                logger.error("Job retention sweep failed", error=str(e), error_type=type(e).__name__)
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)

    def start(self) -> asyncio.Task:
        if not self.is_running:
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
