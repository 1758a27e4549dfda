"""Usage record model: append-only telemetry for sandbox invocations."""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Float, Index, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from ..database import Base


class UsageRecord(Base):
    """
    One row per sandbox invocation attempt, successful or not.

    Rows are never updated after insert.
    """

    __tablename__ = "usage_records"
    __table_args__ = (
        Index("ix_usage_records_project_id", "project_id"),
        Index("ix_usage_records_job_type", "job_type"),
        Index("ix_usage_records_created_at", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Kept when the project is deleted so cost reports stay complete
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)

    job_type = Column(String(50), nullable=False)
    session_id = Column(String(100), nullable=True)

    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    cache_creation_tokens = Column(Integer, nullable=False, default=0)
    cache_read_tokens = Column(Integer, nullable=False, default=0)
    cost_usd = Column(Float, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    num_turns = Column(Integer, nullable=True)
    service_tier = Column(String(50), nullable=True)

    # Which article/section/update the attempt was for
    attempt_metadata = Column(JSON, nullable=True)

    success = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def total_tokens(self) -> int:
        return (self.input_tokens or 0) + (self.output_tokens or 0)
