"""Stored terminal job events."""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func
from ..database import Base


class NotificationRecord(Base):
    """Immutable record of one terminal job event.

    Written by the worker's notification sink and read by the API's event
    feed, which may run in another process.
    """

    __tablename__ = "notification_events"
    __table_args__ = (
        Index("ix_notification_events_project_id", "project_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    # Allowed values: completed, failed
    outcome = Column(String(20), nullable=False)
    message = Column(Text, nullable=True)
    project_id = Column(String(36), nullable=True)
    occurred_at = Column(DateTime(timezone=True), server_default=func.now())
