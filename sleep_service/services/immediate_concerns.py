"""
Acute checks on the newest sleep session, independent of the rolling window.
Each rule raises its own event; rules are never merged.
"""

from typing import Callable, List, Optional

from sleep_service.enums import EventSeverity, SleepEventType
from sleep_service.models.sleep_session import SleepSession
from sleep_service.schemas.sleep_schemas import SleepEvent
from sleep_service.services.pattern_detection import time_to_minutes
from sleep_service.core.logger import get_logger

logger = get_logger("immediate_concerns")


SEVERE_DEPRIVATION_MINUTES = 4 * 60
POOR_QUALITY_SCORE = 2
# Bedtime window [04:00, 06:00)
CRISIS_BEDTIME_START = 4 * 60
CRISIS_BEDTIME_END = 6 * 60


def _session_date(session: SleepSession) -> Optional[str]:
    return session.session_date.isoformat() if session.session_date else None


def check_severe_deprivation(user_id: str, session: SleepSession) -> Optional[SleepEvent]:
    if session.total_sleep_duration is None or session.total_sleep_duration >= SEVERE_DEPRIVATION_MINUTES:
        return None

    return SleepEvent(
        type=SleepEventType.SLEEP_DEPRIVATION_SEVERE,
        user_id=user_id,
        data={
            "duration": session.total_sleep_duration,
            "date": _session_date(session),
            "severity": EventSeverity.CRITICAL.value,
        },
        severity=EventSeverity.CRITICAL,
    )


def check_poor_quality(user_id: str, session: SleepSession) -> Optional[SleepEvent]:
    if not session.quality_score or session.quality_score > POOR_QUALITY_SCORE:
        return None

    return SleepEvent(
        type=SleepEventType.SLEEP_QUALITY_POOR,
        user_id=user_id,
        data={
            "qualityScore": session.quality_score,
            "date": _session_date(session),
            "duration": session.total_sleep_duration,
        },
        severity=EventSeverity.HIGH,
    )


def check_extreme_bedtime(user_id: str, session: SleepSession) -> Optional[SleepEvent]:
    if not session.bedtime:
        return None

    bedtime_minutes = time_to_minutes(session.bedtime)
    if not CRISIS_BEDTIME_START <= bedtime_minutes < CRISIS_BEDTIME_END:
        return None

    return SleepEvent(
        type=SleepEventType.SLEEP_CRISIS_THRESHOLD,
        user_id=user_id,
        data={
            "bedtime": session.bedtime.isoformat(),
            "date": _session_date(session),
            "pattern": "extremely_delayed",
        },
        severity=EventSeverity.CRITICAL,
    )


CONCERN_CHECKS: List[Callable[[str, SleepSession], Optional[SleepEvent]]] = [
    check_severe_deprivation,
    check_poor_quality,
    check_extreme_bedtime,
]


def evaluate_immediate_concerns(user_id: str, session: SleepSession) -> List[SleepEvent]:
    """Run every acute rule against a single session; a failing rule is logged and skipped."""
    events = []
    for check in CONCERN_CHECKS:
        try:
            event = check(user_id, session)
        except Exception as e:
            logger.error(f"Immediate concern check {check.__name__} failed for user {user_id}: {e}", exc_info=True)
            continue
        if event:
            events.append(event)
    return events
