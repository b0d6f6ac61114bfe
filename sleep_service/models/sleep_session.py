from sqlalchemy import Column, String, Date, DateTime, Integer, Float, Boolean, Text, UniqueConstraint, Index
from datetime import datetime
from sleep_service.database.base import Base
import cuid


class SleepSession(Base):
    """
    One night of sleep per user per calendar date.
    Durations and latencies in minutes; efficiency in percent; scores 1-10.
    """
    __tablename__ = "sleep_sessions"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    user_id = Column(String(64), nullable=False, index=True)
    session_date = Column(Date, nullable=False, index=True)

    # Sleep timing
    bedtime = Column(DateTime, nullable=True)
    sleep_onset = Column(DateTime, nullable=True)
    wake_time = Column(DateTime, nullable=True)
    get_up_time = Column(DateTime, nullable=True)

    # Calculated metrics
    total_sleep_duration = Column(Integer, nullable=True)
    sleep_latency = Column(Integer, nullable=True)
    sleep_efficiency = Column(Float, nullable=True)
    wake_episodes = Column(Integer, nullable=True, default=0)

    # Self-reported ratings
    quality_score = Column(Integer, nullable=True)
    energy_level = Column(Integer, nullable=True)
    mood_upon_waking = Column(String(50), nullable=True)

    # Environmental factors
    caffeine_after_2pm = Column(Boolean, nullable=True, default=False)
    alcohol_consumed = Column(Boolean, nullable=True, default=False)
    exercise_day = Column(Boolean, nullable=True, default=False)
    screen_time_before_bed = Column(Integer, nullable=True)
    room_temperature = Column(String(20), nullable=True)  # cold|cool|comfortable|warm|hot

    stress_level_before_bed = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    data_source = Column(String(40), nullable=False, default="manual")
    confidence_score = Column(Float, nullable=False, default=1.0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "session_date", name="uq_sleep_user_date"),
        Index("ix_sleep_user_date", "user_id", "session_date"),
    )
