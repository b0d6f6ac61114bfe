"""
End-to-end analysis cycles against the in-memory database.
"""

from datetime import time

import pytest
from sqlalchemy.future import select

from conftest import utc_today
from sleep_service.models.cross_service_event import CrossServiceEvent
from sleep_service.models.sleep_pattern import SleepPattern
from sleep_service.models.sleep_session import SleepSession
from sleep_service.services.event_dispatcher import CrossServiceEventDispatcher
from sleep_service.services.sleep_analysis_service import SleepAnalysisService


@pytest.fixture
def analysis_service(session_factory):
    return SleepAnalysisService(session_factory, CrossServiceEventDispatcher(session_factory))


async def _patterns(session_factory):
    async with session_factory() as db:
        return list((await db.execute(select(SleepPattern))).scalars().all())


async def _events(session_factory):
    async with session_factory() as db:
        return list((await db.execute(select(CrossServiceEvent))).scalars().all())


@pytest.mark.asyncio
async def test_week_of_short_nights(analysis_service, session_factory, store_sessions, make_session):
    await store_sessions(*[make_session(days_ago=d, duration=200) for d in range(7)])

    summary = await analysis_service.analyze_user("user_1")

    assert summary["sessions_analyzed"] == 7
    assert "insufficient" in summary["patterns_detected"]
    assert summary["aborted"] is False

    patterns = {p.pattern_type: p for p in await _patterns(session_factory)}
    insufficient = patterns["insufficient"]
    assert insufficient.severity_level == "severe"
    assert insufficient.detection_date == utc_today()
    assert insufficient.status == "active"
    assert insufficient.pattern_data["averageDeficit"] == 160

    events = await _events(session_factory)
    assert [(e.event_type, e.target_service) for e in events] == [("SLEEP_DEPRIVATION_SEVERE", "wellness")]
    assert summary["events_published"] == 1


@pytest.mark.asyncio
async def test_rerun_on_same_day_keeps_one_row_per_pattern(analysis_service, session_factory, store_sessions, make_session):
    await store_sessions(*[make_session(days_ago=d, duration=200, quality=2) for d in range(7)])

    def snapshot(rows):
        return {
            p.pattern_type: (p.id, p.confidence_score, p.severity_level, p.pattern_data)
            for p in rows
        }

    first = await analysis_service.analyze_user("user_1")
    after_first = snapshot(await _patterns(session_factory))
    second = await analysis_service.analyze_user("user_1")
    patterns = await _patterns(session_factory)

    assert first["patterns_detected"] == second["patterns_detected"]
    assert len(patterns) == len(first["patterns_detected"])
    assert len({p.pattern_type for p in patterns}) == len(patterns)
    assert snapshot(patterns) == after_first


@pytest.mark.asyncio
async def test_named_session_is_checked_for_concerns(analysis_service, session_factory, store_sessions, make_session):
    older, newest = await store_sessions(
        make_session(days_ago=3, bedtime=time(4, 30)),
        make_session(days_ago=0),
    )

    summary = await analysis_service.analyze_user("user_1", session_id=older.id)

    events = await _events(session_factory)
    assert [e.event_type for e in events] == ["SLEEP_CRISIS_THRESHOLD"]
    assert summary["patterns_detected"] == []


@pytest.mark.asyncio
async def test_no_sessions_is_a_quiet_cycle(analysis_service, session_factory):
    summary = await analysis_service.analyze_user("user_1")

    assert summary["sessions_analyzed"] == 0
    assert summary["patterns_detected"] == []
    assert await _events(session_factory) == []


@pytest.mark.asyncio
async def test_failed_window_fetch_aborts_cycle(analysis_service, engine, session_factory):
    async with engine.begin() as conn:
        await conn.run_sync(SleepSession.__table__.drop)

    summary = await analysis_service.analyze_user("user_1")

    assert summary["aborted"] is True
    assert await _patterns(session_factory) == []
