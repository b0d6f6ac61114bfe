from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from datetime import date
from typing import Dict, Optional

from sleep_service.services.sleep_session_service import SleepSessionService
from sleep_service.schemas.sleep_schemas import (
    SleepSessionCreate,
    SleepSessionUpdate,
    SleepSessionResponse,
    SleepPatternResponse,
    PaginatedSleepSessions
)
from sleep_service.exceptions.errors import NotFoundException
from sleep_service.utils.pipeline import SleepPipeline
from sleep_service.core.logger import get_logger

logger = get_logger("sleep_controller")


class SleepController:
    """Controller for sleep sessions and detected patterns."""

    @staticmethod
    async def create_session(
        user_id: str,
        db: AsyncSession,
        payload: SleepSessionCreate,
        pipeline: SleepPipeline
    ) -> SleepSessionResponse:
        """Log a night of sleep and queue the user's analysis."""
        try:
            session = await SleepSessionService(db).create_session(user_id, payload)
        except SQLAlchemyError as e:
            logger.error(f"Error saving sleep session for user {user_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to save sleep session"
            )

        pipeline.analysis_queue.submit(user_id, session.id)
        return SleepSessionResponse.model_validate(session)

    @staticmethod
    async def list_sessions(
        user_id: str,
        db: AsyncSession,
        start_date: Optional[date],
        end_date: Optional[date],
        quality: Optional[str],
        duration: Optional[str],
        page: int,
        limit: int
    ) -> PaginatedSleepSessions:
        result = await SleepSessionService(db).get_sessions(
            user_id,
            start_date=start_date,
            end_date=end_date,
            quality_filter=quality,
            duration_filter=duration,
            page=page,
            limit=limit
        )
        return PaginatedSleepSessions(
            sessions=[SleepSessionResponse.model_validate(s) for s in result['sessions']],
            page=result['page'],
            limit=result['limit'],
            total=result['total'],
            total_pages=result['total_pages']
        )

    @staticmethod
    async def get_session(user_id: str, db: AsyncSession, session_id: str) -> SleepSessionResponse:
        session = await SleepSessionService(db).get_session_by_id(user_id, session_id)
        if not session:
            raise NotFoundException(f"Sleep session {session_id} not found")
        return SleepSessionResponse.model_validate(session)

    @staticmethod
    async def get_session_for_date(user_id: str, db: AsyncSession, session_date: date) -> SleepSessionResponse:
        session = await SleepSessionService(db).get_session_by_date(user_id, session_date)
        if not session:
            raise NotFoundException(f"No sleep session logged for {session_date.isoformat()}")
        return SleepSessionResponse.model_validate(session)

    @staticmethod
    async def update_session(
        user_id: str,
        db: AsyncSession,
        session_id: str,
        payload: SleepSessionUpdate,
        pipeline: SleepPipeline
    ) -> SleepSessionResponse:
        """Merge changes into a session and queue the user's analysis."""
        session = await SleepSessionService(db).update_session(user_id, session_id, payload)
        if not session:
            raise NotFoundException(f"Sleep session {session_id} not found")

        pipeline.analysis_queue.submit(user_id, session.id)
        return SleepSessionResponse.model_validate(session)

    @staticmethod
    async def delete_session(user_id: str, db: AsyncSession, session_id: str) -> Dict:
        deleted = await SleepSessionService(db).delete_session(user_id, session_id)
        if not deleted:
            raise NotFoundException(f"Sleep session {session_id} not found")

        logger.info(f"Deleted sleep session {session_id} for user {user_id}")
        return {"success": True, "session_id": session_id}

    @staticmethod
    async def get_summary(user_id: str, db: AsyncSession, days: int) -> Dict:
        summary = await SleepSessionService(db).get_recent_summary(user_id, days)
        return {"status": "success", "user_id": user_id, "summary": summary}

    @staticmethod
    async def get_patterns(
        user_id: str,
        db: AsyncSession,
        detection_date: Optional[date],
        pattern_type: Optional[str]
    ) -> Dict:
        patterns = await SleepSessionService(db).get_patterns(user_id, detection_date, pattern_type)
        return {
            "status": "success",
            "user_id": user_id,
            "patterns": [SleepPatternResponse.model_validate(p) for p in patterns],
            "count": len(patterns)
        }
