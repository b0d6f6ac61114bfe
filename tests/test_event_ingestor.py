"""
Tests for consuming inbound events from sibling services.
"""

import asyncio
from datetime import time
from enum import Enum

import pytest
from sqlalchemy.future import select

from sleep_service.enums import InterventionTrigger
from sleep_service.exceptions.errors import MalformedPayload, PersistenceFailure
from sleep_service.models.cross_service_event import CrossServiceEvent
from sleep_service.models.sleep_intervention import SleepIntervention
from sleep_service.services import event_ingestor
from sleep_service.services.event_dispatcher import CrossServiceEventDispatcher
from sleep_service.services.event_ingestor import (
    CrossServiceEventIngestor,
    analyze_sleep_context_for_crisis,
    identify_sleep_risk_factors,
)
from sleep_service.services.event_scheduler import InboundEventScheduler
from sleep_service.services.intervention_generator import SleepInterventionGenerator


@pytest.fixture
def ingestor(session_factory):
    dispatcher = CrossServiceEventDispatcher(session_factory)
    return CrossServiceEventIngestor(session_factory, dispatcher, SleepInterventionGenerator(session_factory))


async def _inbound(ingestor, event_type, data, source="wellness"):
    return await ingestor.receive_event(event_type, source, {
        "userId": data.get("userId", "user_1"),
        "data": data,
        "severity": "high",
        "timestamp": "2026-10-17T08:00:00Z",
    })


async def _outgoing(session_factory):
    async with session_factory() as db:
        result = await db.execute(
            select(CrossServiceEvent).where(CrossServiceEvent.source_service == "sleep")
        )
        return list(result.scalars().all())


async def _reload(session_factory, row_id):
    async with session_factory() as db:
        return await db.get(CrossServiceEvent, row_id)


async def _interventions(session_factory):
    async with session_factory() as db:
        return list((await db.execute(select(SleepIntervention))).scalars().all())


class TestConstruction:
    def test_dispatch_table_must_cover_every_inbound_type(self, session_factory, monkeypatch):
        class ExtendedInbound(str, Enum):
            MOOD_LOG_CREATED = "MOOD_LOG_CREATED"
            ACADEMIC_STRESS_HIGH = "ACADEMIC_STRESS_HIGH"
            CRISIS_ALERT_TRIGGERED = "CRISIS_ALERT_TRIGGERED"
            EXAM_SCHEDULED = "EXAM_SCHEDULED"

        monkeypatch.setattr(event_ingestor, "InboundEventType", ExtendedInbound)
        dispatcher = CrossServiceEventDispatcher(session_factory)

        with pytest.raises(RuntimeError, match="EXAM_SCHEDULED"):
            CrossServiceEventIngestor(session_factory, dispatcher, SleepInterventionGenerator(session_factory))


class TestMoodLog:
    @pytest.mark.asyncio
    async def test_low_mood_after_poor_sleep_emits_correlation(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(make_session(quality=3, duration=330))
        row = await _inbound(ingestor, "MOOD_LOG_CREATED", {"userId": "user_1", "moodScore": 2})

        await ingestor.consume_inbound_event(row)

        outgoing = await _outgoing(session_factory)
        assert len(outgoing) == 1
        assert outgoing[0].event_type == "SLEEP_MOOD_CORRELATION"
        assert outgoing[0].target_service == "wellness"
        assert outgoing[0].severity == "high"
        data = outgoing[0].payload["data"]
        assert data["sleepQuality"] == 3
        assert data["moodScore"] == 2
        assert data["correlationType"] == "poor_sleep_poor_mood"

        stored = await _reload(session_factory, row.id)
        assert stored.processed is True
        assert stored.processed_at is not None
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_good_mood_emits_nothing_but_is_processed(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(make_session(quality=3))
        row = await _inbound(ingestor, "MOOD_LOG_CREATED", {"userId": "user_1", "moodScore": 7})

        await ingestor.consume_inbound_event(row)

        assert await _outgoing(session_factory) == []
        assert (await _reload(session_factory, row.id)).processed is True

    @pytest.mark.asyncio
    async def test_no_recent_session_is_a_no_op(self, ingestor, session_factory):
        row = await _inbound(ingestor, "MOOD_LOG_CREATED", {"userId": "user_1", "moodScore": 1})

        await ingestor.consume_inbound_event(row)

        assert await _outgoing(session_factory) == []
        assert (await _reload(session_factory, row.id)).processed is True


class TestAcademicStress:
    @pytest.mark.asyncio
    async def test_high_stress_and_short_sleep_creates_one_intervention(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(*[make_session(days_ago=d, duration=300, quality=6) for d in range(3)])
        row = await _inbound(ingestor, "ACADEMIC_STRESS_HIGH", {"userId": "user_1", "stressLevel": 8})

        await ingestor.consume_inbound_event(row)

        interventions = await _interventions(session_factory)
        assert len(interventions) == 1
        assert interventions[0].trigger_type == InterventionTrigger.ACADEMIC_STRESS_SLEEP_INTERVENTION.value
        assert interventions[0].severity_level == "high"
        assert interventions[0].status == "pending"
        assert interventions[0].trigger_data["academicStressLevel"] == 8
        assert interventions[0].trigger_data["recentSleepData"]["avgDuration"] == 300
        assert await _outgoing(session_factory) == []
        assert (await _reload(session_factory, row.id)).processed is True

    @pytest.mark.asyncio
    async def test_single_session_is_not_enough(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(make_session(duration=200, quality=2))
        row = await _inbound(ingestor, "ACADEMIC_STRESS_HIGH", {"userId": "user_1", "stressLevel": 9})

        await ingestor.consume_inbound_event(row)

        assert await _interventions(session_factory) == []

    @pytest.mark.asyncio
    async def test_moderate_stress_is_ignored(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(*[make_session(days_ago=d, duration=300) for d in range(3)])
        row = await _inbound(ingestor, "ACADEMIC_STRESS_HIGH", {"userId": "user_1", "stressLevel": 6})

        await ingestor.consume_inbound_event(row)

        assert await _interventions(session_factory) == []

    @pytest.mark.asyncio
    async def test_failed_branch_is_recorded_and_processed(self, session_factory, store_sessions, make_session):
        class FailingGenerator:
            async def create_intervention(self, user_id, record):
                raise PersistenceFailure("database unavailable")

        ingestor = CrossServiceEventIngestor(
            session_factory, CrossServiceEventDispatcher(session_factory), FailingGenerator()
        )
        await store_sessions(*[make_session(days_ago=d, duration=300) for d in range(3)])
        row = await _inbound(ingestor, "ACADEMIC_STRESS_HIGH", {"userId": "user_1", "stressLevel": 9})

        await ingestor.consume_inbound_event(row)

        stored = await _reload(session_factory, row.id)
        assert stored.processed is True
        assert "database unavailable" in stored.error_message


class TestCrisisAlert:
    @pytest.mark.asyncio
    async def test_severe_deprivation_escalates(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(*[
            make_session(days_ago=d, duration=200, quality=3, bedtime=time(4, 0)) for d in range(4)
        ])
        row = await _inbound(ingestor, "CRISIS_ALERT_TRIGGERED", {"userId": "user_1", "alertId": "alert_9"})

        await ingestor.consume_inbound_event(row)

        outgoing = await _outgoing(session_factory)
        assert [e.event_type for e in outgoing] == ["SLEEP_CRISIS_THRESHOLD"]
        assert outgoing[0].severity == "critical"
        data = outgoing[0].payload["data"]
        assert data["crisisAlertId"] == "alert_9"
        assert data["recommendation"] == "immediate_sleep_intervention"
        assert data["sleepContext"]["severeSleepDeprivation"] is True
        assert "extreme_delayed_bedtime" in data["sleepContext"]["riskFactors"]
        assert "chronic_sleep_deprivation" in data["sleepContext"]["riskFactors"]

    @pytest.mark.asyncio
    async def test_rested_user_is_not_escalated(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(*[make_session(days_ago=d) for d in range(4)])
        row = await _inbound(ingestor, "CRISIS_ALERT_TRIGGERED", {"userId": "user_1", "alertId": "alert_9"})

        await ingestor.consume_inbound_event(row)

        assert await _outgoing(session_factory) == []
        assert (await _reload(session_factory, row.id)).processed is True

    def test_context_counts_missing_values_as_zero(self, make_session):
        sessions = [make_session(duration=None, quality=None), make_session(duration=480, quality=8)]
        context = analyze_sleep_context_for_crisis(sessions)
        assert context["averageDuration"] == 240
        assert context["averageQuality"] == 4
        assert context["severeSleepDeprivation"] is False
        assert context["sleepDataPoints"] == 2

    def test_risk_factors(self, make_session):
        sessions = [
            make_session(days_ago=d, duration=280, bedtime=time(3, 30), sleep_efficiency=65.0, stress_level_before_bed=9)
            for d in range(3)
        ]
        assert identify_sleep_risk_factors(sessions) == [
            "extreme_delayed_bedtime",
            "chronic_sleep_deprivation",
            "poor_sleep_efficiency",
            "high_bedtime_stress",
        ]

    def test_six_am_bedtime_is_not_extreme(self, make_session):
        sessions = [make_session(days_ago=d, bedtime=time(6, 0)) for d in range(3)]
        assert "extreme_delayed_bedtime" not in identify_sleep_risk_factors(sessions)


class TestUnknownAndMalformed:
    @pytest.mark.asyncio
    async def test_unknown_type_is_marked_processed(self, ingestor, session_factory):
        row = await _inbound(ingestor, "EXAM_SCHEDULED", {"userId": "user_1"})

        await ingestor.consume_inbound_event(row)

        stored = await _reload(session_factory, row.id)
        assert stored.processed is True
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_malformed_payload_propagates(self, ingestor, session_factory):
        async with session_factory() as db:
            row = CrossServiceEvent(
                source_service="wellness",
                target_service="sleep",
                event_type="MOOD_LOG_CREATED",
                payload="{not json",
            )
            db.add(row)
            await db.commit()

        with pytest.raises(MalformedPayload):
            await ingestor.consume_inbound_event(row)

        assert (await _reload(session_factory, row.id)).processed is False

    @pytest.mark.asyncio
    async def test_scheduler_records_malformed_rows_and_skips_them(self, ingestor, session_factory, store_sessions, make_session):
        await store_sessions(make_session(quality=2))
        async with session_factory() as db:
            bad = CrossServiceEvent(
                source_service="wellness",
                target_service="sleep",
                event_type="MOOD_LOG_CREATED",
                payload="[1, 2, 3]",
            )
            db.add(bad)
            await db.commit()
        good = await _inbound(ingestor, "MOOD_LOG_CREATED", {"userId": "user_1", "moodScore": 1})

        scheduler = InboundEventScheduler(ingestor, poll_interval=0.01, batch_size=10)
        assert await scheduler.process_pending() == 1

        bad_row = await _reload(session_factory, bad.id)
        assert bad_row.processed is False
        assert "Malformed payload" in bad_row.error_message
        assert (await _reload(session_factory, good.id)).processed is True

        # Nothing left to pick up on the next poll
        assert await scheduler.process_pending() == 0
        assert await ingestor.get_unprocessed(10) == []


class TestScheduler:
    @pytest.mark.asyncio
    async def test_notify_wakes_the_poll_loop(self, ingestor, session_factory):
        scheduler = InboundEventScheduler(ingestor, poll_interval=60, batch_size=10)
        await scheduler.start()
        try:
            # First poll runs immediately on an empty table
            await asyncio.sleep(0.05)
            row = await _inbound(ingestor, "EXAM_SCHEDULED", {"userId": "user_1"})
            scheduler.notify()

            for _ in range(100):
                if (await _reload(session_factory, row.id)).processed:
                    break
                await asyncio.sleep(0.01)
        finally:
            await scheduler.stop()

        assert (await _reload(session_factory, row.id)).processed is True
        assert scheduler.is_running is False
