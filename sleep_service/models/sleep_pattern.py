from sqlalchemy import Column, String, Date, DateTime, Float, Boolean, JSON, UniqueConstraint, Index
from datetime import datetime
from sleep_service.database.base import Base
import cuid


class SleepPattern(Base):
    """
    A labeled sleep-behavior classification derived from a rolling window.
    Rows are overwritten per (user, pattern type, detection date).
    """
    __tablename__ = "sleep_patterns"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    user_id = Column(String(64), nullable=False, index=True)

    pattern_type = Column(String(40), nullable=False)
    pattern_subtype = Column(String(20), nullable=True)
    detection_date = Column(Date, nullable=False, index=True)
    analysis_period_start = Column(Date, nullable=False)
    analysis_period_end = Column(Date, nullable=False)

    confidence_score = Column(Float, nullable=False)
    pattern_data = Column(JSON, nullable=True)
    severity_level = Column(String(20), nullable=False)  # mild|moderate|severe
    intervention_recommended = Column(Boolean, default=False, nullable=False)

    # Using String to avoid enum migration issues
    status = Column(String(20), default="active", nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "pattern_type", "detection_date", name="uq_sleep_pattern_user_type_date"),
        Index("ix_sleep_pattern_user_date", "user_id", "detection_date"),
    )
