"""
API v1 routes package.
Sleep service routes.
"""

from .health_routes import router as health_router
from .sleep_routes import router as sleep_router
from .intervention_routes import router as intervention_router
from .event_routes import router as event_router

__all__ = [
    "health_router",
    "sleep_router",
    "intervention_router",
    "event_router"
]
