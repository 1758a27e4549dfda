"""Terminal job events for the UI layer.

Jobs publish one small event when they finish; whatever fans it out to
connected clients subscribes through a sink. The pipeline does not know
about any transport.
"""

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional, Protocol

import sqlalchemy.exc
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..models import NotificationRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    entity_type: str
    entity_id: str
    # "completed" or "failed"
    outcome: str
    message: Optional[str] = None
    project_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return asdict(self)


class NotificationSink(Protocol):
    def publish(self, event: NotificationEvent) -> None:
        ...


class LoggingNotificationSink:
    """Writes events to the log; the default when nothing else is wired up."""

    def publish(self, event: NotificationEvent) -> None:
        log = logger.info if event.outcome == "completed" else logger.warning
        log(
            f"{event.entity_type} {event.entity_id} {event.outcome}: {event.message or ''}".rstrip(": "),
            extra={"entity_type": event.entity_type, "entity_id": event.entity_id, "outcome": event.outcome},
        )


class InMemoryNotificationSink:
    """Keeps the most recent events for the API's event feed (and for tests)."""

    def __init__(self, maxlen: int = 200):
        self._events: Deque[NotificationEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def publish(self, event: NotificationEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent(self, limit: int = 50, project_id: Optional[str] = None) -> List[NotificationEvent]:
        with self._lock:
            events = list(self._events)
        if project_id:
            events = [e for e in events if e.project_id == project_id]
        return list(reversed(events))[:limit]


class FanOutNotificationSink:
    """Publishes to several sinks; a failing sink does not stop the others."""

    def __init__(self, *sinks: NotificationSink):
        self.sinks = list(sinks)

    def publish(self, event: NotificationEvent) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception:
                logger.exception(f"Notification sink {type(sink).__name__} failed")


class DatabaseNotificationSink:
    """Stores events in ``notification_events`` so other processes can read them.

    Each publish uses its own short session: the publishing job's session has
    already committed its resolution and must not be touched. Never raises;
    a failed write is logged and dropped.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory or SessionLocal

    def publish(self, event: NotificationEvent) -> None:
        db = self.session_factory()
        try:
            db.add(NotificationRecord(
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                outcome=event.outcome,
                message=event.message,
                project_id=event.project_id,
                occurred_at=event.occurred_at,
            ))
            db.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            logger.warning(f"Failed to store notification event: {e}")
            db.rollback()
        finally:
            db.close()


def get_recent(db: Session, limit: int = 50, project_id: Optional[str] = None) -> List[NotificationRecord]:
    """Most recent stored events, newest first."""
    query = db.query(NotificationRecord)
    if project_id:
        query = query.filter(NotificationRecord.project_id == project_id)
    return (
        query.order_by(NotificationRecord.occurred_at.desc(), NotificationRecord.id.desc())
        .limit(limit)
        .all()
    )
