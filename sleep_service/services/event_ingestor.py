"""
Cross-Service Event Ingestor
Reacts to events raised by sibling services (mood logs, academic stress,
crisis alerts) by re-reading the user's recent sleep and either re-emitting
a sleep event or writing an intervention.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from sqlalchemy import update
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
import json

from sleep_service.enums import (
    EventSeverity,
    InboundEventType,
    InterventionTrigger,
    SleepEventType,
    TargetService
)
from sleep_service.models.cross_service_event import CrossServiceEvent
from sleep_service.models.sleep_session import SleepSession
from sleep_service.schemas.sleep_schemas import SleepEvent
from sleep_service.services.event_dispatcher import CrossServiceEventDispatcher
from sleep_service.services.intervention_generator import SleepInterventionGenerator
from sleep_service.services.sleep_session_service import SleepSessionService
from sleep_service.services.pattern_detection import time_to_minutes
from sleep_service.exceptions.errors import MalformedPayload, PersistenceFailure
from sleep_service.core.logger import get_logger

logger = get_logger("event_ingestor")


MOOD_WINDOW_DAYS = 1
ACADEMIC_WINDOW_DAYS = 3
CRISIS_WINDOW_DAYS = 7

LOW_MOOD_SCORE = 3
LOW_SLEEP_QUALITY = 4
HIGH_ACADEMIC_STRESS = 7
ACADEMIC_MIN_SESSIONS = 2
ACADEMIC_SHORT_SLEEP_MINUTES = 390
ACADEMIC_POOR_QUALITY = 5

SEVERE_DEPRIVATION_MINUTES = 4 * 60
CHRONIC_SHORT_SLEEP_MINUTES = 5 * 60
CHRONIC_POOR_QUALITY = 3
LOW_EFFICIENCY_PCT = 70
HIGH_BEDTIME_STRESS = 8
# Bedtime window [03:00, 06:00)
EXTREME_BEDTIME_START = 3 * 60
EXTREME_BEDTIME_END = 6 * 60


Handler = Callable[[CrossServiceEvent, Dict[str, Any]], Awaitable[None]]


def _average(values: Sequence[Optional[float]]) -> float:
    """Mean over the window with missing values counted as zero."""
    if not values:
        return 0.0
    return sum(v or 0 for v in values) / len(values)


def identify_sleep_risk_factors(sessions: Sequence[SleepSession]) -> List[str]:
    risk_factors = []

    extreme_bedtimes = [
        s for s in sessions
        if s.bedtime and EXTREME_BEDTIME_START <= time_to_minutes(s.bedtime) < EXTREME_BEDTIME_END
    ]
    if len(extreme_bedtimes) >= 2:
        risk_factors.append("extreme_delayed_bedtime")

    short_nights = [s for s in sessions if s.total_sleep_duration and s.total_sleep_duration < CHRONIC_SHORT_SLEEP_MINUTES]
    if len(short_nights) >= 3:
        risk_factors.append("chronic_sleep_deprivation")

    low_efficiency = [s for s in sessions if s.sleep_efficiency and s.sleep_efficiency < LOW_EFFICIENCY_PCT]
    if len(low_efficiency) >= 3:
        risk_factors.append("poor_sleep_efficiency")

    stressed_nights = [s for s in sessions if s.stress_level_before_bed and s.stress_level_before_bed >= HIGH_BEDTIME_STRESS]
    if len(stressed_nights) >= 2:
        risk_factors.append("high_bedtime_stress")

    return risk_factors


def analyze_sleep_context_for_crisis(sessions: Sequence[SleepSession]) -> Dict[str, Any]:
    """Summarize a 7-day window for attachment to a crisis escalation."""
    avg_duration = _average([s.total_sleep_duration for s in sessions])
    avg_quality = _average([s.quality_score for s in sessions])

    deprived_nights = sum(
        1 for s in sessions
        if s.total_sleep_duration and s.total_sleep_duration < SEVERE_DEPRIVATION_MINUTES
    )
    poor_nights = sum(
        1 for s in sessions
        if s.quality_score and s.quality_score <= CHRONIC_POOR_QUALITY
    )

    return {
        "averageDuration": round(avg_duration, 1),
        "averageQuality": round(avg_quality, 2),
        "severeSleepDeprivation": avg_duration < SEVERE_DEPRIVATION_MINUTES or deprived_nights >= 2,
        "chronicPoorSleep": avg_quality <= CHRONIC_POOR_QUALITY or poor_nights >= 3,
        "sleepDataPoints": len(sessions),
        "riskFactors": identify_sleep_risk_factors(sessions),
    }


class CrossServiceEventIngestor:
    """
    Consumes inbound cross-service events addressed to the sleep service.

    Dispatch is a table keyed by InboundEventType; every member must have a
    handler or construction fails. Each consumed row is marked processed once,
    whatever the branch outcome.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: CrossServiceEventDispatcher,
        intervention_generator: SleepInterventionGenerator,
        service_name: str = TargetService.SLEEP.value
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.intervention_generator = intervention_generator
        self.service_name = service_name

        self.handlers: Dict[InboundEventType, Handler] = {
            InboundEventType.MOOD_LOG_CREATED: self.handle_mood_log,
            InboundEventType.ACADEMIC_STRESS_HIGH: self.handle_academic_stress,
            InboundEventType.CRISIS_ALERT_TRIGGERED: self.handle_crisis_alert,
        }
        missing = set(InboundEventType) - set(self.handlers)
        if missing:
            raise RuntimeError(f"No inbound handler for: {', '.join(sorted(m.value for m in missing))}")

    # ------------------------------------------------------------------
    # Inbound queue
    # ------------------------------------------------------------------

    async def receive_event(
        self,
        event_type: str,
        source_service: str,
        payload: Dict[str, Any]
    ) -> CrossServiceEvent:
        """Persist an event raised by a sibling service for later consumption."""
        row = CrossServiceEvent(
            source_service=source_service,
            target_service=self.service_name,
            event_type=event_type,
            severity=payload.get("severity"),
            payload=payload,
            processed=False
        )
        try:
            async with self.session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not store inbound {event_type} event from {source_service}: {e}") from e

        logger.info(f"Received {event_type} event {row.id} from {source_service}")
        return row

    @staticmethod
    def parse_payload(row: CrossServiceEvent) -> Dict[str, Any]:
        payload = row.payload
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise MalformedPayload(row.id, str(e)) from e

        if not isinstance(payload, dict):
            raise MalformedPayload(row.id, f"expected an object, got {type(payload).__name__}")
        if not isinstance(payload.get("data", {}), dict):
            raise MalformedPayload(row.id, "'data' must be an object")
        return payload

    async def consume_inbound_event(self, row: CrossServiceEvent) -> None:
        """
        Parse and dispatch one inbound row, then mark it processed.

        MalformedPayload propagates before anything is dispatched, leaving the
        row unprocessed. A failing branch is logged and recorded on the row.
        """
        payload = self.parse_payload(row)

        try:
            handler = self.handlers[InboundEventType(row.event_type)]
        except ValueError:
            handler = None

        error = None
        if handler is None:
            logger.info(f"Unhandled event type: {row.event_type} (event {row.id})")
        else:
            try:
                await handler(row, payload)
            except Exception as e:
                logger.error(f"Error processing inbound {row.event_type} event {row.id}: {e}", exc_info=True)
                error = str(e)

        await self.mark_processed(row.id, error)

    async def mark_processed(self, event_id: str, error: Optional[str] = None) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(CrossServiceEvent)
                .where(CrossServiceEvent.id == event_id, CrossServiceEvent.processed.is_(False))
                .values(processed=True, processed_at=datetime.utcnow(), error_message=error)
            )
            await db.commit()

    async def record_failure(self, event_id: str, error: str) -> None:
        """Store why a row could not be consumed; it stays unprocessed."""
        async with self.session_factory() as db:
            await db.execute(
                update(CrossServiceEvent)
                .where(CrossServiceEvent.id == event_id)
                .values(error_message=error)
            )
            await db.commit()

    async def get_unprocessed(self, limit: int) -> List[CrossServiceEvent]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(CrossServiceEvent)
                .where(
                    CrossServiceEvent.target_service == self.service_name,
                    CrossServiceEvent.processed.is_(False),
                    CrossServiceEvent.error_message.is_(None)
                )
                .order_by(CrossServiceEvent.created_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _recent_sessions(self, user_id: str, days: int) -> List[SleepSession]:
        async with self.session_factory() as db:
            return await SleepSessionService(db).get_recent_sessions(user_id, days)

    @staticmethod
    def _user_id(row: CrossServiceEvent, payload: Dict[str, Any]) -> str:
        user_id = payload.get("data", {}).get("userId") or payload.get("userId")
        if not user_id:
            raise MalformedPayload(row.id, "missing userId")
        return user_id

    async def handle_mood_log(self, row: CrossServiceEvent, payload: Dict[str, Any]) -> None:
        data = payload.get("data", {})
        user_id = self._user_id(row, payload)
        mood_score = data.get("moodScore")

        recent = await self._recent_sessions(user_id, MOOD_WINDOW_DAYS)
        if not recent:
            return

        session = recent[0]
        logger.info(
            f"Sleep-mood correlation point for user {user_id}: quality={session.quality_score}, "
            f"duration={session.total_sleep_duration}, mood={mood_score}, date={session.session_date}"
        )

        if (
            mood_score is not None and mood_score <= LOW_MOOD_SCORE
            and session.quality_score and session.quality_score <= LOW_SLEEP_QUALITY
        ):
            await self.dispatcher.publish_event(SleepEvent(
                type=SleepEventType.SLEEP_MOOD_CORRELATION,
                user_id=user_id,
                data={
                    "sleepQuality": session.quality_score,
                    "sleepDuration": session.total_sleep_duration,
                    "moodScore": mood_score,
                    "correlationType": "poor_sleep_poor_mood",
                    "date": session.session_date.isoformat(),
                },
                severity=EventSeverity.HIGH,
            ))

    async def handle_academic_stress(self, row: CrossServiceEvent, payload: Dict[str, Any]) -> None:
        data = payload.get("data", {})
        user_id = self._user_id(row, payload)
        stress_level = data.get("stressLevel")

        recent = await self._recent_sessions(user_id, ACADEMIC_WINDOW_DAYS)
        if len(recent) < ACADEMIC_MIN_SESSIONS:
            return

        avg_duration = _average([s.total_sleep_duration for s in recent])
        avg_quality = _average([s.quality_score for s in recent])

        if stress_level is None or stress_level < HIGH_ACADEMIC_STRESS:
            return
        if avg_duration >= ACADEMIC_SHORT_SLEEP_MINUTES and avg_quality > ACADEMIC_POOR_QUALITY:
            return

        await self.intervention_generator.create_intervention(user_id, {
            "type": InterventionTrigger.ACADEMIC_STRESS_SLEEP_INTERVENTION.value,
            "trigger": "high_academic_stress_poor_sleep",
            "severity": EventSeverity.HIGH.value,
            "academicStressLevel": stress_level,
            "factors": data.get("factors"),
            "recentSleepData": {
                "avgDuration": avg_duration,
                "avgQuality": avg_quality,
            },
        })

    async def handle_crisis_alert(self, row: CrossServiceEvent, payload: Dict[str, Any]) -> None:
        data = payload.get("data", {})
        user_id = self._user_id(row, payload)

        recent = await self._recent_sessions(user_id, CRISIS_WINDOW_DAYS)
        if not recent:
            return

        context = analyze_sleep_context_for_crisis(recent)
        if not context["severeSleepDeprivation"]:
            return

        await self.dispatcher.publish_event(SleepEvent(
            type=SleepEventType.SLEEP_CRISIS_THRESHOLD,
            user_id=user_id,
            data={
                "crisisAlertId": data.get("alertId"),
                "sleepContext": context,
                "recommendation": "immediate_sleep_intervention",
            },
            severity=EventSeverity.CRITICAL,
        ))
