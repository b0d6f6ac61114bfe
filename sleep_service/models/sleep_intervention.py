from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, Index
from datetime import datetime
from sleep_service.database.base import Base
from sleep_service.enums import InterventionStatus
import cuid


# Allowed status moves; completed, dismissed and expired are terminal.
INTERVENTION_TRANSITIONS = {
    InterventionStatus.PENDING: {InterventionStatus.DELIVERED, InterventionStatus.EXPIRED},
    InterventionStatus.DELIVERED: {InterventionStatus.ACKNOWLEDGED, InterventionStatus.EXPIRED},
    InterventionStatus.ACKNOWLEDGED: {
        InterventionStatus.COMPLETED,
        InterventionStatus.DISMISSED,
        InterventionStatus.EXPIRED,
    },
    InterventionStatus.COMPLETED: set(),
    InterventionStatus.DISMISSED: set(),
    InterventionStatus.EXPIRED: set(),
}


class SleepIntervention(Base):
    """
    User-facing sleep recommendation generated from a trigger condition.
    Created as 'pending'; delivery and acknowledgement are driven externally.
    """
    __tablename__ = "sleep_interventions"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    user_id = Column(String(64), nullable=False, index=True)

    trigger_type = Column(String(60), nullable=False)
    trigger_data = Column(JSON, nullable=True)

    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    severity_level = Column(String(20), nullable=False)  # low|medium|high|critical

    # Lifecycle (using String to avoid enum migration issues)
    status = Column(String(20), default="pending", nullable=False)
    delivered_at = Column(DateTime, nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    user_rating = Column(Integer, nullable=True)  # 1-5
    feedback = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_sleep_intervention_user_status", "user_id", "status"),
    )

    def can_transition_to(self, new_status: InterventionStatus) -> bool:
        return new_status in INTERVENTION_TRANSITIONS[InterventionStatus(self.status)]
