"""Business logic services."""

from .github_client import GitHubClient, TokenProvider
from .job_service import JobService
from .notifications import (
    DatabaseNotificationSink,
    FanOutNotificationSink,
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationEvent,
    NotificationSink,
)
from .triggers import TriggerService
from .workflow import WorkflowStateMachine

__all__ = [
    "DatabaseNotificationSink",
    "GitHubClient",
    "TokenProvider",
    "JobService",
    "FanOutNotificationSink",
    "InMemoryNotificationSink",
    "LoggingNotificationSink",
    "NotificationEvent",
    "NotificationSink",
    "TriggerService",
    "WorkflowStateMachine",
]
