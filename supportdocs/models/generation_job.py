"""Generation job model: the persisted work queue for pipeline jobs."""

from sqlalchemy import Column, String, Text, Integer, DateTime, JSON, Index
from sqlalchemy.sql import func
from ..database import Base
from .statuses import JobStatus


class GenerationJob(Base):
    """
    One queued execution of a pipeline job type against one target entity.

    Status transitions: queued -> running -> completed | failed
    Failed jobs with retry_count < JOB_MAX_RETRIES are re-queued.
    The worker claims jobs with a compare-and-set on status.
    """

    __tablename__ = "generation_jobs"
    __table_args__ = (
        Index("ix_generation_jobs_status_created", "status", "created_at"),
        Index("ix_generation_jobs_entity", "job_type", "entity_id"),
    )

    # Primary key (UUID format)
    id = Column(String(50), primary_key=True)

    # Registered job type, e.g. "analyze_commit"
    job_type = Column(String(50), nullable=False)
    # Target entity the job owns (update, article, section, check or project id)
    entity_id = Column(String(36), nullable=False)
    project_id = Column(String(36), nullable=True)
    # Extra job arguments (commit sha, pr number, ...)
    payload = Column(JSON, nullable=True)

    # Job lifecycle
    # Allowed values: queued, running, completed, failed
    status = Column(String(20), nullable=False, default=JobStatus.QUEUED)
    error_message = Column(Text, nullable=True)

    retry_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
