"""Article update check and suggestion models."""

import uuid

from sqlalchemy import Column, ForeignKey, Index, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from .statuses import RunStatus, SuggestionPriority, SuggestionStatus


class ArticleUpdateCheck(Base):
    """
    One run of "which articles are stale between base and target commit".

    status: pending -> running -> completed | failed
    results holds the suggestion totals on success or {"error": ...} on failure.
    """

    __tablename__ = "article_update_checks"
    __table_args__ = (
        Index("ix_article_update_checks_project_id", "project_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    target_commit_sha = Column(String(40), nullable=False)
    base_commit_sha = Column(String(40), nullable=True)

    # Allowed values: pending, running, completed, failed
    status = Column(String(20), nullable=False, default=RunStatus.PENDING)
    results = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    project = relationship("Project", back_populates="update_checks")
    suggestions = relationship("ArticleUpdateSuggestion", back_populates="check",
                               cascade="all, delete-orphan")

    @property
    def duration_seconds(self):
        if not (self.started_at and self.completed_at):
            return None
        return round((self.completed_at - self.started_at).total_seconds())


class ArticleUpdateSuggestion(Base):
    """
    Output item of an update check.

    update_needed suggestions always reference an existing article;
    new_article suggestions never need one.
    """

    __tablename__ = "article_update_suggestions"
    __table_args__ = (
        Index("ix_article_update_suggestions_check_id", "check_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    check_id = Column(String(36), ForeignKey("article_update_checks.id", ondelete="CASCADE"), nullable=False)
    article_id = Column(String(36), ForeignKey("articles.id", ondelete="CASCADE"), nullable=True)

    # Allowed values: update_needed, new_article
    suggestion_type = Column(String(20), nullable=False)
    # Allowed values: low, medium, high, critical
    priority = Column(String(10), nullable=False, default=SuggestionPriority.MEDIUM)
    # Allowed values: pending, accepted, dismissed
    status = Column(String(20), nullable=False, default=SuggestionStatus.PENDING)

    reason = Column(Text, nullable=True)
    affected_files = Column(JSON, nullable=True)
    # {update_steps[], update_introduction, add_prerequisite, notes, title, description}
    suggested_changes = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    check = relationship("ArticleUpdateCheck", back_populates="suggestions")
    article = relationship("Article")
