"""FastAPI dependency providers.

Long-lived collaborators (repository host client, token cache, notification
sink) are created once by the application and kept on ``app.state``; each
request gets its own session and the per-request services built on it.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..database import get_db
from ..services.notifications import NotificationSink
from ..services.triggers import TriggerService
from ..services.workflow import WorkflowStateMachine


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_sink(request: Request) -> NotificationSink:
    return request.app.state.sink


def get_trigger_service(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> TriggerService:
    return TriggerService(db, settings, github=request.app.state.github, tokens=request.app.state.tokens)


def get_workflow(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sink: NotificationSink = Depends(get_sink),
) -> WorkflowStateMachine:
    return WorkflowStateMachine(db, settings, sink)
