from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from sleep_service.core.config import settings
from sleep_service.database.connection import get_db
from sleep_service.middlewares.gateway_auth import get_current_user_id
from sleep_service.api.v1.controllers.event_controller import EventController
from sleep_service.schemas.sleep_schemas import InboundEventRequest, CrossServiceEventResponse
from sleep_service.utils.pipeline import SleepPipeline, get_pipeline

router = APIRouter(prefix="/sleep/events", tags=["Cross-Service Events"])


@router.post("/inbound", response_model=CrossServiceEventResponse, status_code=202)
async def receive_inbound_event(
    payload: InboundEventRequest,
    pipeline: SleepPipeline = Depends(get_pipeline)
):
    """
    Accept an event from a sibling service.

    Supported types are MOOD_LOG_CREATED, ACADEMIC_STRESS_HIGH and
    CRISIS_ALERT_TRIGGERED; anything else is stored and marked processed
    without effect. Processing happens in the background.
    """
    return await EventController.receive_inbound(payload, pipeline)


@router.get("")
async def list_sleep_events(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    processed: Optional[bool] = Query(None, description="Filter on the processed flag"),
    limit: int = Query(50, ge=1, le=200)
):
    """Events the sleep service raised about the user, newest first."""
    return await EventController.list_events(user_id, db, settings.SERVICE_NAME, processed, limit)
