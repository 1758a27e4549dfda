"""Section model."""

import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from .statuses import SectionStatus, SectionType


class Section(Base):
    """
    A top-level grouping of articles on the documentation site.

    recommendations_status: NULL -> running -> completed | failed
    Only accepted sections are eligible for recommendation generation.
    """

    __tablename__ = "sections"
    __table_args__ = (
        UniqueConstraint("project_id", "slug", name="uq_sections_project_slug"),
        Index("ix_sections_project_id", "project_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(50), nullable=True)
    position = Column(Integer, nullable=False, default=0)

    # Allowed values: template, ai_generated, custom
    section_type = Column(String(20), nullable=False, default=SectionType.TEMPLATE)
    # Allowed values: pending, accepted, rejected
    status = Column(String(20), nullable=False, default=SectionStatus.ACCEPTED)

    # Allowed values: NULL, running, completed, failed
    recommendations_status = Column(String(20), nullable=True)
    recommendations_started_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("Project", back_populates="sections")
    recommendations = relationship("Recommendation", back_populates="section")
    articles = relationship("Article", back_populates="section")
