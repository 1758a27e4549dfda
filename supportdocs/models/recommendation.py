"""Recommendation model."""

import uuid

from sqlalchemy import Column, ForeignKey, Index, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from .statuses import RecommendationStatus


class Recommendation(Base):
    """A proposed article, not yet written.

    Derived record: produced by commit/PR analysis or recommendation
    generation and fully replaced when its producer runs again.
    """

    __tablename__ = "recommendations"
    __table_args__ = (
        Index("ix_recommendations_project_id", "project_id"),
        Index("ix_recommendations_section_id", "section_id"),
        Index("ix_recommendations_source_update_id", "source_update_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(String(36), ForeignKey("sections.id", ondelete="SET NULL"), nullable=True)
    source_update_id = Column(String(36), ForeignKey("updates.id", ondelete="CASCADE"), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    justification = Column(Text, nullable=True)

    # Allowed values: pending, rejected, generated
    status = Column(String(20), nullable=False, default=RecommendationStatus.PENDING)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("Project", back_populates="recommendations")
    section = relationship("Section", back_populates="recommendations")
    source_update = relationship("Update", back_populates="recommendations")
    article = relationship("Article", back_populates="recommendation", uselist=False)
