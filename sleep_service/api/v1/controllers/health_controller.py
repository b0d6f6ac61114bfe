from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict

from sleep_service.database.connection import DatabaseQueries
from sleep_service.core.config import settings
from sleep_service.core.logger import get_logger

logger = get_logger("health_controller")


async def health_check(request: Request, db: AsyncSession) -> Dict:
    """Liveness plus pipeline row counts and background task state."""
    pipeline = getattr(request.app.state, "pipeline", None)
    response = {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "environment": settings.ENVIRONMENT,
        "analysis_queue": {
            "running": bool(pipeline and pipeline.analysis_queue.is_running),
            "pending": pipeline.analysis_queue.pending if pipeline else 0,
        },
        "event_scheduler_running": bool(pipeline and pipeline.event_scheduler.is_running),
    }

    try:
        response["pipeline"] = await DatabaseQueries.get_pipeline_stats(db)
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        response["status"] = "degraded"
        response["pipeline"] = None

    return response
