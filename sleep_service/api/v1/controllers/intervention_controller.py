from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import desc
from datetime import datetime
from typing import Dict, Optional

from sleep_service.enums import InterventionStatus
from sleep_service.models.sleep_intervention import SleepIntervention
from sleep_service.schemas.sleep_schemas import (
    SleepInterventionResponse,
    CompleteInterventionRequest,
    UpdateInterventionStatusResponse
)
from sleep_service.exceptions.errors import NotFoundException, InvalidStatusTransition
from sleep_service.core.logger import get_logger

logger = get_logger("intervention_controller")


# Status each action moves to, and the timestamp column it stamps
INTERVENTION_ACTIONS = {
    "deliver": (InterventionStatus.DELIVERED, "delivered_at"),
    "acknowledge": (InterventionStatus.ACKNOWLEDGED, "acknowledged_at"),
    "complete": (InterventionStatus.COMPLETED, "completed_at"),
    "dismiss": (InterventionStatus.DISMISSED, None),
}


class InterventionController:
    """Controller for user-facing sleep interventions."""

    @staticmethod
    async def list_interventions(
        user_id: str,
        db: AsyncSession,
        status_filter: Optional[InterventionStatus]
    ) -> Dict:
        stmt = select(SleepIntervention).where(SleepIntervention.user_id == user_id)
        if status_filter:
            stmt = stmt.where(SleepIntervention.status == status_filter.value)

        result = await db.execute(stmt.order_by(desc(SleepIntervention.created_at)))
        interventions = result.scalars().all()

        return {
            "status": "success",
            "user_id": user_id,
            "interventions": [SleepInterventionResponse.model_validate(i) for i in interventions],
            "count": len(interventions)
        }

    @staticmethod
    async def update_status(
        user_id: str,
        db: AsyncSession,
        intervention_id: str,
        action: str,
        payload: Optional[CompleteInterventionRequest] = None
    ) -> UpdateInterventionStatusResponse:
        """Move an intervention one step along its lifecycle."""
        new_status, timestamp_field = INTERVENTION_ACTIONS[action]

        result = await db.execute(
            select(SleepIntervention)
            .where(SleepIntervention.id == intervention_id)
            .where(SleepIntervention.user_id == user_id)
        )
        intervention = result.scalar_one_or_none()

        if not intervention:
            raise NotFoundException(f"Intervention {intervention_id} not found or does not belong to user")

        if not intervention.can_transition_to(new_status):
            raise InvalidStatusTransition(intervention.status, new_status.value)

        old_status = intervention.status
        intervention.status = new_status.value
        if timestamp_field:
            setattr(intervention, timestamp_field, datetime.utcnow())

        if payload:
            if payload.rating is not None:
                intervention.user_rating = payload.rating
            if payload.feedback:
                intervention.feedback = payload.feedback

        try:
            await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error updating intervention {intervention_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update intervention status"
            )

        logger.info(
            f"Updated intervention {intervention_id} status: "
            f"{old_status} -> {new_status.value} for user {user_id}"
        )

        return UpdateInterventionStatusResponse(
            success=True,
            message=f"Intervention status updated to {new_status.value}",
            intervention_id=intervention_id,
            new_status=new_status
        )
