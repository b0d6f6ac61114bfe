"""
Cross-Service Event Dispatcher
Routes sleep events to sibling services through a fixed routing table and
persists one outgoing row per resolved target.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, List

from sleep_service.enums import SleepEventType, TargetService
from sleep_service.models.cross_service_event import CrossServiceEvent
from sleep_service.schemas.sleep_schemas import SleepEvent
from sleep_service.core.logger import get_logger

logger = get_logger("event_dispatcher")


EVENT_ROUTES: Dict[SleepEventType, List[TargetService]] = {
    SleepEventType.SLEEP_QUALITY_POOR: [TargetService.WELLNESS],
    SleepEventType.SLEEP_PATTERN_CONCERNING: [TargetService.WELLNESS, TargetService.ACADEMIC],
    SleepEventType.SLEEP_DEPRIVATION_SEVERE: [TargetService.WELLNESS],
    SleepEventType.SLEEP_IMPROVEMENT_NEEDED: [TargetService.WELLNESS],
    SleepEventType.SLEEP_CRISIS_THRESHOLD: [TargetService.WELLNESS],
    SleepEventType.SLEEP_MOOD_CORRELATION: [TargetService.WELLNESS],
    SleepEventType.SLEEP_ACADEMIC_IMPACT: [TargetService.ACADEMIC, TargetService.WELLNESS],
}


def resolve_targets(event_type: str) -> List[str]:
    """Ordered target services for an event type; unknown types resolve to none."""
    try:
        routed_type = SleepEventType(event_type)
    except ValueError:
        return []
    return [target.value for target in EVENT_ROUTES.get(routed_type, [])]


class CrossServiceEventDispatcher:
    """Publishes sleep events as cross_service_events rows"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source_service: str = TargetService.SLEEP.value
    ):
        self.session_factory = session_factory
        self.source_service = source_service

    async def publish_event(self, event: SleepEvent) -> List[CrossServiceEvent]:
        """
        Persist one unprocessed row per routed target.

        Returns the rows written. Unrouted types and failed writes both return
        an empty list; nothing is raised to the caller.
        """
        targets = resolve_targets(event.type)
        if not targets:
            logger.debug(f"No routes for event type {event.type}; dropping event for user {event.user_id}")
            return []

        payload = event.to_payload()
        rows = [
            CrossServiceEvent(
                source_service=self.source_service,
                target_service=target,
                event_type=event.type,
                severity=event.severity.value,
                payload=payload,
                processed=False
            )
            for target in targets
        ]

        try:
            async with self.session_factory() as db:
                db.add_all(rows)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error publishing sleep event {event.type} for user {event.user_id}: {e}")
            return []

        logger.info(f"Sleep event {event.type} published to services: {', '.join(targets)}")
        return rows
