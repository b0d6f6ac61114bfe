"""
Inbound event scheduler
Polls unprocessed cross-service events addressed to the sleep service and
hands them to the ingestor one at a time.
"""

import asyncio
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from sleep_service.services.event_ingestor import CrossServiceEventIngestor
from sleep_service.exceptions.errors import MalformedPayload
from sleep_service.core.logger import get_logger

logger = get_logger("event_scheduler")


class InboundEventScheduler:
    def __init__(
        self,
        ingestor: CrossServiceEventIngestor,
        poll_interval: float = 30.0,
        batch_size: int = 50
    ):
        self.ingestor = ingestor
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def notify(self):
        """Wake the poll loop early, e.g. after an inbound event was stored."""
        if self._wakeup is not None:
            self._wakeup.set()

    async def process_pending(self) -> int:
        """Consume one batch of pending rows. Returns how many were consumed."""
        rows = await self.ingestor.get_unprocessed(self.batch_size)
        consumed = 0

        for row in rows:
            try:
                await self.ingestor.consume_inbound_event(row)
                consumed += 1
            except MalformedPayload as e:
                logger.error(str(e))
                await self.ingestor.record_failure(row.id, str(e))
            except SQLAlchemyError as e:
                logger.error(f"Database error consuming event {row.id}: {e}")

        if rows:
            logger.info(f"Consumed {consumed}/{len(rows)} inbound events")
        return consumed

    async def start(self):
        if self.is_running:
            return
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="sleep-inbound-events")
        logger.info(f"Inbound event scheduler started (every {self.poll_interval}s)")

    async def stop(self):
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        self._wakeup = None
        logger.info("Inbound event scheduler stopped successfully")

    async def _run(self):
        while True:
            try:
                await self.process_pending()
            except Exception as e:
                logger.error(f"Inbound event poll failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()
