"""
Tests for intervention titles, messages and persistence.
"""

import pytest
from sqlalchemy.future import select

from sleep_service.enums import InterventionStatus
from sleep_service.models.sleep_intervention import SleepIntervention
from sleep_service.services.intervention_generator import (
    DEFAULT_TITLE,
    SleepInterventionGenerator,
    build_message,
    build_title,
)


@pytest.mark.parametrize(
    "trigger_type, title",
    [
        ("academic_stress_sleep_intervention", "Sleep Support for Academic Stress"),
        ("crisis_sleep_support", "Emergency Sleep Support"),
        ("pattern_intervention", "Sleep Pattern Improvement"),
        ("quality_improvement", "Sleep Quality Enhancement"),
        ("something_else", DEFAULT_TITLE),
    ],
)
def test_titles(trigger_type, title):
    assert build_title(trigger_type) == title


def test_academic_message_interpolates_present_metrics():
    message = build_message({
        "type": "academic_stress_sleep_intervention",
        "academicStressLevel": 8,
        "recentSleepData": {"avgDuration": 300, "avgQuality": 4},
    })

    assert "8/10" in message
    assert "5.0 hours" in message
    assert message.endswith("Consider prioritizing sleep to help with stress management.")


def test_academic_message_without_metrics_stays_generic():
    message = build_message({"type": "academic_stress_sleep_intervention"})
    assert "/10" not in message
    assert message.startswith("We've noticed high academic stress")


def test_unknown_trigger_gets_fallback_message():
    message = build_message({"type": "something_else"})
    assert "opportunity to improve your sleep patterns" in message


def test_pattern_message_without_pattern_falls_back():
    assert build_message({"type": "pattern_intervention"}) == build_message({"type": "something_else"})


@pytest.mark.asyncio
async def test_create_intervention_is_pending(session_factory):
    generator = SleepInterventionGenerator(session_factory)
    record = {
        "type": "crisis_sleep_support",
        "severity": "critical",
        "alertId": "alert_1",
    }

    created = await generator.create_intervention("user_1", record)

    async with session_factory() as db:
        stored = (await db.execute(select(SleepIntervention))).scalars().all()

    assert len(stored) == 1
    assert stored[0].id == created.id
    assert stored[0].status == InterventionStatus.PENDING.value
    assert stored[0].trigger_type == "crisis_sleep_support"
    assert stored[0].title == "Emergency Sleep Support"
    assert stored[0].severity_level == "critical"
    assert stored[0].trigger_data == record
