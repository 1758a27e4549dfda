"""Usage reporting schemas."""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Any, Dict, Optional


class UsageRecordResponse(BaseModel):
    id: str
    project_id: Optional[str] = None
    job_type: str
    session_id: Optional[str] = None
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int
    total_tokens: int
    cost_usd: Optional[float] = None
    duration_ms: Optional[int] = None
    num_turns: Optional[int] = None
    success: bool
    error_message: Optional[str] = None
    attempt_metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class JobTypeUsage(BaseModel):
    invocations: int
    cost_usd: float
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int
    cache_read_tokens: int


class UsageTotals(BaseModel):
    """Totals overall and grouped by job type."""
    invocations: int
    cost_usd: float
    input_tokens: int
    output_tokens: int
    by_job_type: Dict[str, JobTypeUsage]
