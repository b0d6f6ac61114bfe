"""
Shared enums for the application.
"""

from .sleep_enums import (
    PatternType,
    PatternSeverity,
    PatternStatus,
    EventSeverity,
    SleepEventType,
    InboundEventType,
    TargetService,
    InterventionTrigger,
    InterventionStatus,
    RoomTemperature
)

__all__ = [
    "PatternType",
    "PatternSeverity",
    "PatternStatus",
    "EventSeverity",
    "SleepEventType",
    "InboundEventType",
    "TargetService",
    "InterventionTrigger",
    "InterventionStatus",
    "RoomTemperature"
]
