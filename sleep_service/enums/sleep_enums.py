"""
Sleep-related enums for the application.
"""

from enum import Enum


class PatternType(str, Enum):
    DELAYED_PHASE = "delayed_phase"
    IRREGULAR = "irregular"
    INSUFFICIENT = "insufficient"
    FRAGMENTED = "fragmented"
    POOR_QUALITY = "poor_quality"


class PatternSeverity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class PatternStatus(str, Enum):
    ACTIVE = "active"
    IMPROVING = "improving"
    RESOLVED = "resolved"
    WORSENING = "worsening"


class EventSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SleepEventType(str, Enum):
    """Outgoing events raised by the sleep service."""
    SLEEP_QUALITY_POOR = "SLEEP_QUALITY_POOR"
    SLEEP_PATTERN_CONCERNING = "SLEEP_PATTERN_CONCERNING"
    SLEEP_DEPRIVATION_SEVERE = "SLEEP_DEPRIVATION_SEVERE"
    SLEEP_IMPROVEMENT_NEEDED = "SLEEP_IMPROVEMENT_NEEDED"
    SLEEP_CRISIS_THRESHOLD = "SLEEP_CRISIS_THRESHOLD"
    SLEEP_MOOD_CORRELATION = "SLEEP_MOOD_CORRELATION"
    SLEEP_ACADEMIC_IMPACT = "SLEEP_ACADEMIC_IMPACT"


class InboundEventType(str, Enum):
    """Events raised by sibling services that the sleep service reacts to."""
    MOOD_LOG_CREATED = "MOOD_LOG_CREATED"
    ACADEMIC_STRESS_HIGH = "ACADEMIC_STRESS_HIGH"
    CRISIS_ALERT_TRIGGERED = "CRISIS_ALERT_TRIGGERED"


class TargetService(str, Enum):
    SLEEP = "sleep"
    WELLNESS = "wellness"
    ACADEMIC = "academic"


class InterventionTrigger(str, Enum):
    ACADEMIC_STRESS_SLEEP_INTERVENTION = "academic_stress_sleep_intervention"
    CRISIS_SLEEP_SUPPORT = "crisis_sleep_support"
    PATTERN_INTERVENTION = "pattern_intervention"
    QUALITY_IMPROVEMENT = "quality_improvement"


class InterventionStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


class RoomTemperature(str, Enum):
    COLD = "cold"
    COOL = "cool"
    COMFORTABLE = "comfortable"
    WARM = "warm"
    HOT = "hot"
