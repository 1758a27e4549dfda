"""Update model: one analyzed commit or pull request."""

import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from .statuses import RunStatus, UpdateSource


class Update(Base):
    """
    Changelog entry produced by analyzing a commit or merged pull request.

    analysis_status: pending -> running -> completed | failed
    Recommendations spawned by the analysis are owned by the update and
    replaced wholesale when it is re-analyzed.
    """

    __tablename__ = "updates"
    __table_args__ = (
        Index("ix_updates_project_commit", "project_id", "commit_sha"),
        Index("ix_updates_project_pr", "project_id", "pull_request_number"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    # Allowed values: commit, pull_request
    source_type = Column(String(20), nullable=False, default=UpdateSource.COMMIT)
    # For pull requests this is the merge commit SHA
    commit_sha = Column(String(40), nullable=True)
    pull_request_number = Column(Integer, nullable=True)
    source_url = Column(Text, nullable=True)

    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)

    # Allowed values: pending, running, completed, failed
    analysis_status = Column(String(20), nullable=False, default=RunStatus.PENDING)
    analysis_started_at = Column(DateTime(timezone=True), nullable=True)

    # Allowed values: draft, published
    status = Column(String(20), nullable=False, default="draft")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="updates")
    recommendations = relationship("Recommendation", back_populates="source_update",
                                   cascade="all, delete-orphan")

    @property
    def short_sha(self) -> str:
        return (self.commit_sha or "")[:7]
