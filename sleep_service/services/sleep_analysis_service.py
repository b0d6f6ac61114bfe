"""
Sleep Analysis Service
Runs one analysis cycle for a user: fetch the rolling window, detect
patterns, upsert each one, check the newest session for acute concerns and
publish the resulting events.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from sleep_service.enums import PatternStatus
from sleep_service.services.sleep_session_service import SleepSessionService
from sleep_service.services.pattern_detection import DetectedPattern, detect_patterns
from sleep_service.services.immediate_concerns import evaluate_immediate_concerns
from sleep_service.services.event_dispatcher import CrossServiceEventDispatcher
from sleep_service.exceptions.errors import PersistenceFailure, UpstreamFetchFailure
from sleep_service.core.logger import get_logger

logger = get_logger("sleep_analysis_service")


DEFAULT_LOOKBACK_DAYS = 21


def pattern_fields(pattern: DetectedPattern, detection_date: date, lookback_days: int) -> Dict[str, Any]:
    return {
        'pattern_subtype': pattern.pattern_subtype,
        'analysis_period_start': detection_date - timedelta(days=lookback_days),
        'analysis_period_end': detection_date,
        'confidence_score': pattern.confidence_score,
        'pattern_data': pattern.pattern_data,
        'severity_level': pattern.severity_level.value,
        'intervention_recommended': pattern.intervention_recommended,
        'status': PatternStatus.ACTIVE.value,
    }


class SleepAnalysisService:
    """Analysis orchestrator, one instance per application"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: CrossServiceEventDispatcher,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.lookback_days = lookback_days

    async def analyze_user(
        self,
        user_id: str,
        session_id: Optional[str] = None,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Run a full analysis cycle.

        `session_id` names the session that was just written; when omitted the
        newest session in the window is checked for immediate concerns. A failed
        window fetch aborts this cycle only. Pattern upserts are isolated from
        each other.
        """
        today = today or datetime.utcnow().date()
        summary: Dict[str, Any] = {
            'user_id': user_id,
            'sessions_analyzed': 0,
            'patterns_detected': [],
            'patterns_persisted': 0,
            'events_published': 0,
            'aborted': False,
        }

        try:
            async with self.session_factory() as db:
                service = SleepSessionService(db)
                sessions = await service.get_recent_sessions(user_id, self.lookback_days, today)
                newest = await service.get_session_by_id(user_id, session_id) if session_id else None
        except UpstreamFetchFailure as e:
            logger.error(f"Aborting sleep analysis for user {user_id}: {e}")
            summary['aborted'] = True
            return summary

        if newest is None and sessions:
            newest = sessions[0]
        summary['sessions_analyzed'] = len(sessions)

        patterns = detect_patterns(sessions)
        summary['patterns_detected'] = [p.pattern_type.value for p in patterns]

        for pattern in patterns:
            try:
                async with self.session_factory() as db:
                    await SleepSessionService(db).upsert_pattern(
                        user_id,
                        pattern.pattern_type.value,
                        today,
                        pattern_fields(pattern, today, self.lookback_days)
                    )
                summary['patterns_persisted'] += 1
            except PersistenceFailure as e:
                logger.error(f"Pattern {pattern.pattern_type.value} not saved for user {user_id}: {e}")

        if newest is not None:
            for event in evaluate_immediate_concerns(user_id, newest):
                rows = await self.dispatcher.publish_event(event)
                summary['events_published'] += len(rows)

        logger.info(
            f"Sleep analysis for user {user_id}: {summary['sessions_analyzed']} sessions, "
            f"patterns={summary['patterns_detected']}, events={summary['events_published']}"
        )
        return summary
