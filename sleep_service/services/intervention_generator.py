"""
Sleep Intervention Generator
Turns a trigger record into a titled, templated recommendation.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict

from sleep_service.enums import InterventionStatus, InterventionTrigger
from sleep_service.models.sleep_intervention import SleepIntervention
from sleep_service.exceptions.errors import PersistenceFailure
from sleep_service.core.logger import get_logger

logger = get_logger("intervention_generator")


DEFAULT_TITLE = "Sleep Support Recommendation"

INTERVENTION_TITLES = {
    InterventionTrigger.ACADEMIC_STRESS_SLEEP_INTERVENTION: "Sleep Support for Academic Stress",
    InterventionTrigger.CRISIS_SLEEP_SUPPORT: "Emergency Sleep Support",
    InterventionTrigger.PATTERN_INTERVENTION: "Sleep Pattern Improvement",
    InterventionTrigger.QUALITY_IMPROVEMENT: "Sleep Quality Enhancement",
}


def build_title(trigger_type: str) -> str:
    return INTERVENTION_TITLES.get(trigger_type, DEFAULT_TITLE)


def build_message(record: Dict[str, Any]) -> str:
    trigger_type = record.get("type")

    if trigger_type == InterventionTrigger.ACADEMIC_STRESS_SLEEP_INTERVENTION:
        message = (
            "We've noticed high academic stress combined with poor sleep quality. "
            "Getting better sleep can significantly improve your ability to manage academic pressure."
        )
        sleep_data = record.get("recentSleepData") or {}
        stress_level = record.get("academicStressLevel")
        avg_duration = sleep_data.get("avgDuration")
        if stress_level is not None and avg_duration is not None:
            message += (
                f" Your stress level is {stress_level}/10 and you've averaged "
                f"{avg_duration / 60:.1f} hours of sleep over the last few nights."
            )
        return message + " Consider prioritizing sleep to help with stress management."

    elif trigger_type == InterventionTrigger.CRISIS_SLEEP_SUPPORT:
        return (
            "Your recent sleep patterns may be contributing to how you're feeling right now. "
            "Severe sleep deprivation can worsen mental health symptoms. "
            "Please prioritize sleep and consider reaching out for immediate support."
        )

    elif trigger_type == InterventionTrigger.PATTERN_INTERVENTION:
        pattern = record.get("patternType")
        if pattern:
            return (
                f"We've detected a {pattern.replace('_', ' ')} sleep pattern over the past few weeks. "
                "Small, consistent changes to your routine can help reset it."
            )

    elif trigger_type == InterventionTrigger.QUALITY_IMPROVEMENT:
        avg_quality = record.get("averageQuality")
        if avg_quality is not None:
            return (
                f"Your sleep quality has averaged {avg_quality}/10 recently. "
                "A calmer wind-down routine and less screen time before bed can help."
            )

    return (
        "We've identified an opportunity to improve your sleep patterns, "
        "which can have a positive impact on your overall wellness."
    )


class SleepInterventionGenerator:
    """Creates pending sleep interventions"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_intervention(self, user_id: str, record: Dict[str, Any]) -> SleepIntervention:
        """
        Persist a pending intervention for the trigger described by `record`.
        `record["type"]` selects the title and message templates.
        """
        trigger_type = record["type"]
        intervention = SleepIntervention(
            user_id=user_id,
            trigger_type=trigger_type,
            trigger_data=record,
            title=build_title(trigger_type),
            message=build_message(record),
            severity_level=record.get("severity", "medium"),
            status=InterventionStatus.PENDING.value
        )

        try:
            async with self.session_factory() as db:
                db.add(intervention)
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not create {trigger_type} intervention for user {user_id}: {e}") from e

        logger.info(f"Sleep intervention created for user {user_id}: {intervention.title}")
        return intervention
