"""Generation job schemas."""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class GenerationJobResponse(BaseModel):
    """Schema for queued job status."""
    id: str
    job_type: str
    entity_id: str
    project_id: Optional[str] = None
    payload: Optional[dict] = None
    status: str
    error_message: Optional[str] = None
    retry_count: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
