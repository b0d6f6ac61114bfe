from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc
from typing import Dict, Optional

from sleep_service.models.cross_service_event import CrossServiceEvent
from sleep_service.schemas.sleep_schemas import InboundEventRequest, CrossServiceEventResponse
from sleep_service.exceptions.errors import PersistenceFailure
from sleep_service.utils.pipeline import SleepPipeline
from sleep_service.core.logger import get_logger

logger = get_logger("event_controller")


class EventController:
    """Controller for cross-service events."""

    @staticmethod
    async def receive_inbound(payload: InboundEventRequest, pipeline: SleepPipeline) -> CrossServiceEventResponse:
        """Store an event raised by a sibling service and wake the consumer."""
        try:
            row = await pipeline.ingestor.receive_event(
                payload.event_type,
                payload.source_service,
                payload.payload
            )
        except PersistenceFailure as e:
            logger.error(str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to store inbound event"
            )

        pipeline.event_scheduler.notify()
        return CrossServiceEventResponse.model_validate(row)

    @staticmethod
    async def list_events(
        user_id: str,
        db: AsyncSession,
        source_service: str,
        processed: Optional[bool],
        limit: int
    ) -> Dict:
        """Outgoing events raised about the user."""
        stmt = select(CrossServiceEvent).where(
            CrossServiceEvent.source_service == source_service,
            CrossServiceEvent.payload["userId"].as_string() == user_id
        )
        if processed is not None:
            stmt = stmt.where(CrossServiceEvent.processed.is_(processed))

        result = await db.execute(stmt.order_by(desc(CrossServiceEvent.created_at)).limit(limit))
        events = result.scalars().all()

        return {
            "status": "success",
            "user_id": user_id,
            "events": [CrossServiceEventResponse.model_validate(e) for e in events],
            "count": len(events)
        }
