from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date, datetime
from typing import Optional

from sleep_service.database.connection import get_db
from sleep_service.middlewares.gateway_auth import get_current_user_id
from sleep_service.api.v1.controllers.sleep_controller import SleepController
from sleep_service.schemas.sleep_schemas import (
    SleepSessionCreate,
    SleepSessionUpdate,
    SleepSessionResponse,
    PaginatedSleepSessions
)
from sleep_service.utils.pipeline import SleepPipeline, get_pipeline

router = APIRouter(prefix="/sleep", tags=["Sleep"])


@router.post("/sessions", response_model=SleepSessionResponse, status_code=201)
async def create_sleep_session(
    payload: SleepSessionCreate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    pipeline: SleepPipeline = Depends(get_pipeline)
):
    """
    Log a night of sleep.

    A second entry for the same date overwrites the first. Duration, latency
    and efficiency are derived from the timing fields. Pattern analysis runs
    in the background after the write.
    """
    return await SleepController.create_session(user_id, db, payload, pipeline)


@router.get("/sessions", response_model=PaginatedSleepSessions)
async def list_sleep_sessions(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    start_date: Optional[date] = Query(None, description="Earliest session date"),
    end_date: Optional[date] = Query(None, description="Latest session date"),
    quality: Optional[str] = Query(None, pattern="^(poor|fair|good|excellent)$"),
    duration: Optional[str] = Query(None, pattern="^(insufficient|short|normal|long)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100)
):
    return await SleepController.list_sessions(
        user_id, db, start_date, end_date, quality, duration, page, limit
    )


@router.get("/sessions/summary")
async def get_sleep_summary(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    days: int = Query(7, ge=1, le=90, description="Number of days to summarize")
):
    """Averages and counts over the last `days` days."""
    return await SleepController.get_summary(user_id, db, days)


@router.get("/sessions/today", response_model=SleepSessionResponse)
async def get_todays_sleep_session(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """The session logged for today (UTC date), or 404."""
    return await SleepController.get_session_for_date(user_id, db, datetime.utcnow().date())


@router.get("/sessions/date/{session_date}", response_model=SleepSessionResponse)
async def get_sleep_session_by_date(
    session_date: date,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return await SleepController.get_session_for_date(user_id, db, session_date)


@router.get("/sessions/{session_id}", response_model=SleepSessionResponse)
async def get_sleep_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return await SleepController.get_session(user_id, db, session_id)


@router.put("/sessions/{session_id}", response_model=SleepSessionResponse)
async def update_sleep_session(
    session_id: str,
    payload: SleepSessionUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    pipeline: SleepPipeline = Depends(get_pipeline)
):
    return await SleepController.update_session(user_id, db, session_id, payload, pipeline)


@router.delete("/sessions/{session_id}")
async def delete_sleep_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return await SleepController.delete_session(user_id, db, session_id)


@router.get("/patterns")
async def get_sleep_patterns(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    detection_date: Optional[date] = Query(None),
    pattern_type: Optional[str] = Query(
        None,
        pattern="^(delayed_phase|irregular|insufficient|fragmented|poor_quality)$"
    )
):
    """
    Detected sleep patterns, newest detection first.

    Several pattern types can be active at once; each is stored separately.
    """
    return await SleepController.get_patterns(user_id, db, detection_date, pattern_type)
