"""
Bounded work queue that runs sleep analysis off the request path.

Session writes submit a job and return immediately. A fixed pool of worker
tasks drains the queue. Jobs still queued or running when the process stops
are lost; the next write for that user recomputes the window.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sleep_service.services.sleep_analysis_service import SleepAnalysisService
from sleep_service.core.logger import get_logger

logger = get_logger("analysis_queue")


@dataclass
class AnalysisJob:
    user_id: str
    session_id: Optional[str] = None
    enqueued_at: datetime = field(default_factory=datetime.utcnow)


class AnalysisQueue:
    def __init__(self, analysis_service: SleepAnalysisService, maxsize: int = 1000, workers: int = 2):
        self.analysis_service = analysis_service
        self.maxsize = maxsize
        self.worker_count = workers
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._queue is not None

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    def submit(self, user_id: str, session_id: Optional[str] = None) -> bool:
        """Enqueue an analysis job without waiting. Returns False when the job was dropped."""
        if self._queue is None:
            logger.warning(f"Analysis queue not started; dropping job for user {user_id}")
            return False

        try:
            self._queue.put_nowait(AnalysisJob(user_id=user_id, session_id=session_id))
        except asyncio.QueueFull:
            logger.warning(f"Analysis queue full ({self.maxsize}); dropping job for user {user_id}")
            return False
        return True

    async def start(self):
        if self._queue is not None:
            return
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"sleep-analysis-{n}")
            for n in range(self.worker_count)
        ]
        logger.info(f"Analysis queue started with {self.worker_count} workers")

    async def join(self):
        """Wait until every submitted job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self):
        if self._queue is None:
            return

        dropped = self.pending
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None

        if dropped:
            logger.warning(f"Analysis queue stopped with {dropped} jobs still queued")
        logger.info("Analysis queue stopped successfully")

    async def _worker(self, number: int):
        while True:
            job = await self._queue.get()
            try:
                await self.analysis_service.analyze_user(job.user_id, job.session_id)
            except Exception as e:
                logger.error(f"Worker {number} failed analysing user {job.user_id}: {e}", exc_info=True)
            finally:
                self._queue.task_done()
