from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sleep_service.database.connection import get_db
from sleep_service.api.v1.controllers.health_controller import health_check

router = APIRouter()


@router.get("/health", tags=["Health"])
async def service_health(request: Request, db: AsyncSession = Depends(get_db)):
    return await health_check(request, db)
