"""
Sleep Pipeline Wiring

Builds the analysis pipeline components once on startup and hangs them off
app.state. Routes reach them through the dependency getters below.
"""

from dataclasses import dataclass
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sleep_service.core.config import Settings
from sleep_service.services.event_dispatcher import CrossServiceEventDispatcher
from sleep_service.services.intervention_generator import SleepInterventionGenerator
from sleep_service.services.event_ingestor import CrossServiceEventIngestor
from sleep_service.services.sleep_analysis_service import SleepAnalysisService
from sleep_service.services.analysis_queue import AnalysisQueue
from sleep_service.services.event_scheduler import InboundEventScheduler
from sleep_service.core.logger import get_logger

logger = get_logger("pipeline")


@dataclass
class SleepPipeline:
    dispatcher: CrossServiceEventDispatcher
    intervention_generator: SleepInterventionGenerator
    ingestor: CrossServiceEventIngestor
    analysis_service: SleepAnalysisService
    analysis_queue: AnalysisQueue
    event_scheduler: InboundEventScheduler

    async def start(self):
        await self.analysis_queue.start()
        await self.event_scheduler.start()

    async def stop(self):
        await self.event_scheduler.stop()
        await self.analysis_queue.stop()


def build_pipeline(session_factory: async_sessionmaker[AsyncSession], config: Settings) -> SleepPipeline:
    """Construct every pipeline component with its collaborators."""
    dispatcher = CrossServiceEventDispatcher(session_factory, source_service=config.SERVICE_NAME)
    intervention_generator = SleepInterventionGenerator(session_factory)
    ingestor = CrossServiceEventIngestor(
        session_factory,
        dispatcher,
        intervention_generator,
        service_name=config.SERVICE_NAME
    )
    analysis_service = SleepAnalysisService(
        session_factory,
        dispatcher,
        lookback_days=config.PATTERN_LOOKBACK_DAYS
    )

    pipeline = SleepPipeline(
        dispatcher=dispatcher,
        intervention_generator=intervention_generator,
        ingestor=ingestor,
        analysis_service=analysis_service,
        analysis_queue=AnalysisQueue(
            analysis_service,
            maxsize=config.ANALYSIS_QUEUE_SIZE,
            workers=config.ANALYSIS_WORKERS
        ),
        event_scheduler=InboundEventScheduler(
            ingestor,
            poll_interval=config.EVENT_POLL_INTERVAL_SECONDS,
            batch_size=config.EVENT_POLL_BATCH_SIZE
        ),
    )
    logger.info("✅ Sleep pipeline constructed")
    return pipeline


def get_pipeline(request: Request) -> SleepPipeline:
    """FastAPI dependency returning the pipeline built at startup."""
    return request.app.state.pipeline
