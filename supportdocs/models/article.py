"""Article model."""

import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from .statuses import ReviewStatus, RunStatus


class Article(Base):
    """
    A written help article.

    generation_status (pending -> running -> completed | failed) and
    review_status (unreviewed -> approved | rejected) are independent;
    review is only allowed once generation completed.
    """

    __tablename__ = "articles"
    __table_args__ = (
        Index("ix_articles_project_id", "project_id"),
        Index("ix_articles_section_id", "section_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(String(36), ForeignKey("sections.id", ondelete="SET NULL"), nullable=True)

    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)
    # {introduction, prerequisites[], steps[{title, content}], tips[], summary}
    structured_content = Column(JSON, nullable=True)
    position = Column(Integer, nullable=False, default=0)

    # Allowed values: pending, running, completed, failed
    generation_status = Column(String(20), nullable=False, default=RunStatus.PENDING)
    generation_started_at = Column(DateTime(timezone=True), nullable=True)
    # Allowed values: unreviewed, approved, rejected
    review_status = Column(String(20), nullable=False, default=ReviewStatus.UNREVIEWED)

    # Commit the article was last written against
    source_commit_sha = Column(String(40), nullable=True)
    # Set when an update suggestion is accepted; consumed by the next generation
    regeneration_guidance = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="articles")
    recommendation = relationship("Recommendation", back_populates="article")
    section = relationship("Section", back_populates="articles")

    @property
    def introduction(self):
        return (self.structured_content or {}).get("introduction")

    @property
    def steps(self) -> list:
        return (self.structured_content or {}).get("steps") or []
