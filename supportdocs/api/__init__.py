"""API routes."""

from .projects import router as projects_router
from .triggers import router as triggers_router
from .entities import router as entities_router
from .jobs import router as jobs_router
from .usage import router as usage_router
from .events import router as events_router

__all__ = [
    "projects_router",
    "triggers_router",
    "entities_router",
    "jobs_router",
    "usage_router",
    "events_router",
]
