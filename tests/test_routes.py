"""
HTTP surface tests. The pipeline is built but never started, so session
writes only try to enqueue and inbound events are only stored.
"""

import uuid

import httpx
import pytest
import pytest_asyncio

from conftest import utc_today
from sleep_service.core.config import settings
from sleep_service.database.connection import get_db
from sleep_service.enums import EventSeverity, SleepEventType
from sleep_service.main import app
from sleep_service.schemas.sleep_schemas import SleepEvent
from sleep_service.services.event_dispatcher import CrossServiceEventDispatcher
from sleep_service.services.intervention_generator import SleepInterventionGenerator
from sleep_service.utils.pipeline import build_pipeline

USER = {"X-User-Id": "user_1"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.pipeline = build_pipeline(session_factory, settings)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
    del app.state.pipeline


@pytest.mark.asyncio
async def test_missing_user_header_is_rejected(client):
    response = await client.get("/api/v1/sleep/sessions")

    assert response.status_code == 401
    assert response.json() == {"detail": "Missing user identity"}


@pytest.mark.asyncio
async def test_health_is_public(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["analysis_queue"] == {"running": False, "pending": 0}
    assert body["pipeline"]["total_sleep_sessions"] == 0


@pytest.mark.asyncio
async def test_session_lifecycle(client):
    created = await client.post("/api/v1/sleep/sessions", headers=USER, json={
        "session_date": "2026-10-16",
        "bedtime": "2026-10-15T23:00:00",
        "wake_time": "2026-10-16T07:00:00",
        "quality_score": 7,
    })
    assert created.status_code == 201
    session = created.json()
    assert session["total_sleep_duration"] == 395
    assert session["user_id"] == "user_1"

    fetched = await client.get(f"/api/v1/sleep/sessions/{session['id']}", headers=USER)
    assert fetched.status_code == 200

    other_user = await client.get(f"/api/v1/sleep/sessions/{session['id']}", headers={"X-User-Id": "user_2"})
    assert other_user.status_code == 404

    updated = await client.put(f"/api/v1/sleep/sessions/{session['id']}", headers=USER, json={"quality_score": 3})
    assert updated.status_code == 200
    assert updated.json()["quality_score"] == 3

    listing = await client.get("/api/v1/sleep/sessions", headers=USER, params={"quality": "poor"})
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    deleted = await client.delete(f"/api/v1/sleep/sessions/{session['id']}", headers=USER)
    assert deleted.status_code == 200


@pytest.mark.asyncio
async def test_summary_is_not_taken_for_a_session_id(client):
    response = await client.get("/api/v1/sleep/sessions/summary", headers=USER)

    assert response.status_code == 200
    assert response.json()["summary"]["total_sessions"] == 0


@pytest.mark.asyncio
async def test_unknown_session_is_404(client):
    response = await client.get("/api/v1/sleep/sessions/missing", headers=USER)

    assert response.status_code == 404
    assert "not found" in response.json()["error"]


@pytest.mark.asyncio
async def test_invalid_quality_is_422(client):
    response = await client.post("/api/v1/sleep/sessions", headers=USER, json={
        "session_date": "2026-10-16",
        "quality_score": 11,
    })

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_intervention_transitions(client, session_factory):
    intervention = await SleepInterventionGenerator(session_factory).create_intervention("user_1", {
        "type": "quality_improvement",
        "severity": "medium",
    })
    base = f"/api/v1/sleep/interventions/{intervention.id}"

    delivered = await client.put(f"{base}/deliver", headers=USER)
    assert delivered.status_code == 200
    assert delivered.json()["new_status"] == "delivered"

    skipped = await client.put(f"{base}/complete", headers=USER, json={"rating": 5})
    assert skipped.status_code == 409

    assert (await client.put(f"{base}/acknowledge", headers=USER)).status_code == 200
    completed = await client.put(f"{base}/complete", headers=USER, json={"rating": 4, "feedback": "helped"})
    assert completed.status_code == 200

    listing = await client.get("/api/v1/sleep/interventions", headers=USER, params={"status": "completed"})
    body = listing.json()
    assert body["count"] == 1
    assert body["interventions"][0]["user_rating"] == 4
    assert body["interventions"][0]["feedback"] == "helped"


@pytest.mark.asyncio
async def test_other_users_intervention_is_404(client, session_factory):
    intervention = await SleepInterventionGenerator(session_factory).create_intervention("user_2", {
        "type": "quality_improvement",
    })

    response = await client.put(f"/api/v1/sleep/interventions/{intervention.id}/deliver", headers=USER)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_inbound_event_needs_no_user_header(client):
    response = await client.post("/api/v1/sleep/events/inbound", json={
        "event_type": "MOOD_LOG_CREATED",
        "source_service": "wellness",
        "payload": {"userId": "user_1", "data": {"userId": "user_1", "moodScore": 2}, "severity": "medium"},
    })

    assert response.status_code == 202
    body = response.json()
    assert body["target_service"] == "sleep"
    assert body["processed"] is False
    assert body["severity"] == "medium"


@pytest.mark.asyncio
async def test_events_are_listed_per_user(client, session_factory):
    dispatcher = CrossServiceEventDispatcher(session_factory)
    for user_id in ("user_1", "user_2"):
        await dispatcher.publish_event(SleepEvent(
            type=SleepEventType.SLEEP_PATTERN_CONCERNING,
            user_id=user_id,
            severity=EventSeverity.MEDIUM,
        ))

    response = await client.get("/api/v1/sleep/events", headers=USER)

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert {e["target_service"] for e in body["events"]} == {"wellness", "academic"}


@pytest.mark.asyncio
async def test_session_lookup_by_date(client):
    today = utc_today().isoformat()
    missing_today = await client.get("/api/v1/sleep/sessions/today", headers=USER)
    assert missing_today.status_code == 404

    await client.post("/api/v1/sleep/sessions", headers=USER, json={"session_date": today, "quality_score": 6})
    await client.post("/api/v1/sleep/sessions", headers=USER, json={"session_date": "2026-10-10", "quality_score": 4})

    todays = await client.get("/api/v1/sleep/sessions/today", headers=USER)
    assert todays.status_code == 200
    assert todays.json()["session_date"] == today

    by_date = await client.get("/api/v1/sleep/sessions/date/2026-10-10", headers=USER)
    assert by_date.status_code == 200
    assert by_date.json()["quality_score"] == 4

    empty_date = await client.get("/api/v1/sleep/sessions/date/2026-10-11", headers=USER)
    assert empty_date.status_code == 404
    assert "2026-10-11" in empty_date.json()["error"]

    bad_date = await client.get("/api/v1/sleep/sessions/date/10-10-2026", headers=USER)
    assert bad_date.status_code == 422


@pytest.mark.asyncio
async def test_offset_bedtime_is_stored_as_local_clock(client):
    created = await client.post("/api/v1/sleep/sessions", headers=USER, json={
        "session_date": "2026-10-17",
        "bedtime": "2026-10-16T23:30:00-05:00",
        "wake_time": "2026-10-17T07:00:00-05:00",
    })

    assert created.status_code == 201
    assert created.json()["bedtime"] == "2026-10-16T23:30:00"


@pytest.mark.asyncio
async def test_moving_session_onto_taken_date_is_409(client):
    await client.post("/api/v1/sleep/sessions", headers=USER, json={"session_date": "2026-10-15"})
    other = (await client.post("/api/v1/sleep/sessions", headers=USER, json={"session_date": "2026-10-16"})).json()

    response = await client.put(f"/api/v1/sleep/sessions/{other['id']}", headers=USER, json={"session_date": "2026-10-15"})

    assert response.status_code == 409
    assert "2026-10-15" in response.json()["error"]


@pytest.mark.asyncio
async def test_uuid_user_ids_are_accepted(client):
    user_id = str(uuid.uuid4())

    created = await client.post("/api/v1/sleep/sessions", headers={"X-User-Id": user_id}, json={"session_date": "2026-10-16"})

    assert created.status_code == 201
    assert created.json()["user_id"] == user_id
