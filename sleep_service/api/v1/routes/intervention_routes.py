from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from sleep_service.database.connection import get_db
from sleep_service.middlewares.gateway_auth import get_current_user_id
from sleep_service.api.v1.controllers.intervention_controller import InterventionController
from sleep_service.enums import InterventionStatus
from sleep_service.schemas.sleep_schemas import CompleteInterventionRequest, UpdateInterventionStatusResponse

router = APIRouter(prefix="/sleep/interventions", tags=["Sleep Interventions"])


@router.get("")
async def list_interventions(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    status: Optional[InterventionStatus] = Query(None, description="Only interventions in this status")
):
    return await InterventionController.list_interventions(user_id, db, status)


@router.put("/{intervention_id}/deliver", response_model=UpdateInterventionStatusResponse)
async def deliver_intervention(
    intervention_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Mark a pending intervention as shown to the user."""
    return await InterventionController.update_status(user_id, db, intervention_id, "deliver")


@router.put("/{intervention_id}/acknowledge", response_model=UpdateInterventionStatusResponse)
async def acknowledge_intervention(
    intervention_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return await InterventionController.update_status(user_id, db, intervention_id, "acknowledge")


@router.put("/{intervention_id}/complete", response_model=UpdateInterventionStatusResponse)
async def complete_intervention(
    intervention_id: str,
    payload: Optional[CompleteInterventionRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """
    Mark an acknowledged intervention as completed.

    Optionally records a 1-5 helpfulness rating and free-text feedback.
    """
    return await InterventionController.update_status(user_id, db, intervention_id, "complete", payload)


@router.put("/{intervention_id}/dismiss", response_model=UpdateInterventionStatusResponse)
async def dismiss_intervention(
    intervention_id: str,
    payload: Optional[CompleteInterventionRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return await InterventionController.update_status(user_id, db, intervention_id, "dismiss", payload)
