from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, List
from datetime import date, datetime
from enum import Enum

from sleep_service.enums import EventSeverity, InterventionStatus, RoomTemperature


def _utc_timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _to_wall_clock(v: Optional[datetime]) -> Optional[datetime]:
    """
    Keep the user's local clock reading and drop the offset.

    Bedtime rules work on the hour the user saw, so 23:30-05:00 stays 23:30.
    """
    if v is not None and v.tzinfo is not None:
        return v.replace(tzinfo=None)
    return v


class SleepSessionCreate(BaseModel):
    """Schema for logging a night of sleep"""
    session_date: date = Field(..., description="Calendar date the night belongs to")
    bedtime: Optional[datetime] = Field(None, description="When the user went to bed")
    sleep_onset: Optional[datetime] = Field(None, description="When the user fell asleep")
    wake_time: Optional[datetime] = Field(None, description="When the user woke up")
    get_up_time: Optional[datetime] = Field(None, description="When the user got out of bed")
    quality_score: Optional[int] = Field(None, ge=1, le=10, description="Self-rated quality (1-10)")
    energy_level: Optional[int] = Field(None, ge=1, le=10, description="Energy on waking (1-10)")
    mood_upon_waking: Optional[str] = Field(None, max_length=50)
    caffeine_after_2pm: Optional[bool] = None
    alcohol_consumed: Optional[bool] = None
    exercise_day: Optional[bool] = None
    screen_time_before_bed: Optional[int] = Field(None, ge=0, description="Minutes of screen time before bed")
    room_temperature: Optional[RoomTemperature] = None
    stress_level_before_bed: Optional[int] = Field(None, ge=1, le=10)
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator('bedtime', 'sleep_onset', 'wake_time', 'get_up_time')
    @classmethod
    def keep_wall_clock(cls, v):
        return _to_wall_clock(v)


class SleepSessionUpdate(SleepSessionCreate):
    """Partial update; omitted fields keep their stored values"""
    session_date: Optional[date] = None


class SleepSessionResponse(BaseModel):
    id: str
    user_id: str
    session_date: date
    bedtime: Optional[datetime] = None
    sleep_onset: Optional[datetime] = None
    wake_time: Optional[datetime] = None
    get_up_time: Optional[datetime] = None
    total_sleep_duration: Optional[int] = None
    sleep_latency: Optional[int] = None
    sleep_efficiency: Optional[float] = None
    wake_episodes: Optional[int] = None
    quality_score: Optional[int] = None
    energy_level: Optional[int] = None
    mood_upon_waking: Optional[str] = None
    caffeine_after_2pm: Optional[bool] = None
    alcohol_consumed: Optional[bool] = None
    exercise_day: Optional[bool] = None
    screen_time_before_bed: Optional[int] = None
    room_temperature: Optional[str] = None
    stress_level_before_bed: Optional[int] = None
    notes: Optional[str] = None
    data_source: str
    confidence_score: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SleepPatternResponse(BaseModel):
    id: str
    user_id: str
    pattern_type: str
    pattern_subtype: Optional[str] = None
    detection_date: date
    analysis_period_start: date
    analysis_period_end: date
    confidence_score: float
    pattern_data: Optional[Dict[str, Any]] = None
    severity_level: str
    intervention_recommended: bool
    status: str

    class Config:
        from_attributes = True


class SleepEvent(BaseModel):
    """
    Wire shape of a sleep event:
    {type, userId, data, severity, timestamp}
    """
    type: str = Field(..., description="Sleep event type")
    user_id: str = Field(..., alias="userId")
    data: Dict[str, Any] = Field(default_factory=dict)
    severity: EventSeverity
    timestamp: str = Field(default_factory=_utc_timestamp, description="ISO-8601 timestamp")

    class Config:
        populate_by_name = True

    @field_validator('type', mode='before')
    @classmethod
    def unwrap_enum(cls, v):
        return v.value if isinstance(v, Enum) else v

    def to_payload(self) -> Dict[str, Any]:
        """Body persisted on every routed event row."""
        return {
            "userId": self.user_id,
            "data": self.data,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
        }


class InboundEventRequest(BaseModel):
    """Event raised by a sibling service and addressed to the sleep service"""
    event_type: str = Field(..., max_length=80)
    source_service: str = Field(..., max_length=40)
    payload: Dict[str, Any] = Field(..., description="{userId, data, severity, timestamp}")


class CrossServiceEventResponse(BaseModel):
    id: str
    source_service: str
    target_service: str
    event_type: str
    severity: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    processed: bool
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SleepInterventionResponse(BaseModel):
    id: str
    user_id: str
    trigger_type: str
    trigger_data: Optional[Dict[str, Any]] = None
    title: str
    message: str
    severity_level: str
    status: str
    delivered_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    user_rating: Optional[int] = None
    feedback: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompleteInterventionRequest(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5, description="How helpful the recommendation was (1-5)")
    feedback: Optional[str] = Field(None, max_length=1000)


class UpdateInterventionStatusResponse(BaseModel):
    success: bool
    message: str
    intervention_id: str
    new_status: InterventionStatus


class PaginatedSleepSessions(BaseModel):
    sessions: List[SleepSessionResponse]
    page: int
    limit: int
    total: int
    total_pages: int
