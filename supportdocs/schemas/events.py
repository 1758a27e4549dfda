"""Notification event schema."""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class NotificationEventResponse(BaseModel):
    entity_type: str
    entity_id: str
    outcome: str
    message: Optional[str] = None
    project_id: Optional[str] = None
    occurred_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
