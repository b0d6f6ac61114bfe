"""
Models package for the application.
"""

from .sleep_session import SleepSession
from .sleep_pattern import SleepPattern
from .cross_service_event import CrossServiceEvent
from .sleep_intervention import SleepIntervention, INTERVENTION_TRANSITIONS

__all__ = [
    "SleepSession",
    "SleepPattern",
    "CrossServiceEvent",
    "SleepIntervention",
    "INTERVENTION_TRANSITIONS",
]
