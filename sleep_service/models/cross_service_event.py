from sqlalchemy import Column, String, DateTime, Boolean, Text, JSON, Index
from datetime import datetime
from sleep_service.database.base import Base
import cuid


class CrossServiceEvent(Base):
    """
    Append-only record of an event addressed to one target service.
    An event fanned out to two services produces two rows.
    """
    __tablename__ = "cross_service_events"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    source_service = Column(String(40), nullable=False)   # 'sleep' | 'wellness' | 'academic'
    target_service = Column(String(40), nullable=False)
    event_type = Column(String(80), nullable=False)
    severity = Column(String(20), nullable=True)
    payload = Column(JSON, nullable=True)  # {"userId", "data", "severity", "timestamp"}

    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_cross_event_target_processed", "target_service", "processed", "created_at"),
        Index("ix_cross_event_type_time", "event_type", "created_at"),
    )
