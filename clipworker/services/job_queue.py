"""
Job Queue Service
Bounded async queue of planned jobs waiting for clip dispatch.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Set

from ..utils.logger import get_logger

logger = get_logger()

JobRunner = Callable[[str], Awaitable[None]]


class JobQueue:
    """Dispatch planned jobs with a fixed number of runner tasks."""

    def __init__(self):
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=50)
        self._workers: List[asyncio.Task] = []
        self._runner: Optional[JobRunner] = None
        self._running = False
        self._worker_count = 1
        self._max_pending = 50
        self._queued_ids: Set[str] = set()
        self._active_ids: Set[str] = set()

    def configure(self, runner: JobRunner, worker_count: int, max_pending: int):
        """Set the job runner and capacity; ignored once started."""
        if self._running:
            return

        self._runner = runner
        self._worker_count = max(1, worker_count)
        self._max_pending = max(1, max_pending)
        self._queue = asyncio.Queue(maxsize=self._max_pending)

    async def start(self):
        """Start runner tasks."""
        if self._running:
            return
        if self._runner is None:
            raise RuntimeError("JobQueue runner is not configured")

        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(index + 1))
            for index in range(self._worker_count)
        ]
        logger.info(
            f"Job queue started (workers={self._worker_count}, max_pending={self._max_pending})"
        )

    async def stop(self):
        """Stop runner tasks after the jobs they are on."""
        if not self._running:
            return

        self._running = False
        for _ in self._workers:
            await self._queue.put(None)

        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._queued_ids.clear()
        self._active_ids.clear()
        logger.info("Job queue stopped")

    async def enqueue(self, job_id: str) -> bool:
        """
        Queue a job for dispatch.

        A job that is already queued or running is not queued twice.
        Returns False when the queue is at capacity.
        """
        if not self._running:
            raise RuntimeError("Job queue is not running")

        if job_id in self._queued_ids or job_id in self._active_ids:
            return True

        if self._queue.full():
            logger.warning(f"Job queue full, rejected job {job_id}")
            return False

        self._queued_ids.add(job_id)
        await self._queue.put(job_id)
        logger.info(f"Job {job_id} queued ({self._queue.qsize()} pending)")
        return True

    async def join(self):
        """Wait until every queued job has been run."""
        await self._queue.join()

    def can_accept(self) -> bool:
        """Check if queue has free pending capacity."""
        return not self._queue.full()

    def stats(self) -> dict:
        """Current queue statistics."""
        return {
            "pending": self._queue.qsize(),
            "active": len(self._active_ids),
            "max_pending": self._max_pending,
            "workers": self._worker_count,
            "running": self._running,
        }

    async def _worker_loop(self, worker_id: int):
        while True:
            job_id = await self._queue.get()
            if job_id is None:
                self._queue.task_done()
                return

            self._queued_ids.discard(job_id)
            self._active_ids.add(job_id)
            try:
                await self._runner(job_id)  # type: ignore[misc]
            except Exception as exc:
                logger.exception(f"Runner {worker_id} failed job {job_id}: {exc}")
            finally:
                self._active_ids.discard(job_id)
                self._queue.task_done()
