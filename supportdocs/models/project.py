"""Project model."""

import uuid

from sqlalchemy import Column, Index, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from .statuses import OnboardingStep, RunStatus


def _uuid() -> str:
    return str(uuid.uuid4())


class Project(Base):
    """
    A documentation site generated from one or more source repositories.

    analysis_status: pending -> running -> completed | failed
    analysis_commit_sha only moves on a successful analysis.
    """

    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_slug", "slug", unique=True),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)

    # Primary repository in "owner/repo" form
    github_repo = Column(String(255), nullable=False)
    # Additional repositories for multi-repo projects:
    # [{"repo": "owner/name", "directory": "name", "installation_id": "123"}]
    repositories = Column(JSON, default=list)
    installation_id = Column(String(50), nullable=True)

    # Codebase analysis
    # Allowed values: pending, running, completed, failed
    analysis_status = Column(String(20), nullable=False, default=RunStatus.PENDING)
    analysis_started_at = Column(DateTime(timezone=True), nullable=True)
    analyzed_at = Column(DateTime(timezone=True), nullable=True)
    analysis_commit_sha = Column(String(40), nullable=True)
    analysis_summary = Column(Text, nullable=True)
    # Free-form facts: tech_stack, key_patterns, components, target_users,
    # style_context, repository_relationships, compiled_css
    analysis_metadata = Column(JSON, nullable=True)
    project_overview = Column(Text, nullable=True)
    contextual_questions = Column(JSON, nullable=True)

    # Section suggestions (follow-on of a completed analysis)
    sections_generation_status = Column(String(20), nullable=True)
    sections_generation_started_at = Column(DateTime(timezone=True), nullable=True)

    # Onboarding answers: target_audience, industry, documentation_goals,
    # tone_preference, product_stage, contextual_answers
    user_context = Column(JSON, default=dict)
    # Model override for all generation jobs of this project
    model_id = Column(String(100), nullable=True)
    # "weekly" enables the scheduled pull-request sweep
    update_strategy = Column(String(20), nullable=True)

    # Wizard position; NULL means onboarding is complete
    onboarding_step = Column(String(20), nullable=True, default=OnboardingStep.BASICS)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    sections = relationship("Section", back_populates="project", cascade="all, delete-orphan",
                            order_by="Section.position")
    updates = relationship("Update", back_populates="project", cascade="all, delete-orphan")
    recommendations = relationship("Recommendation", back_populates="project", cascade="all, delete-orphan")
    articles = relationship("Article", back_populates="project", cascade="all, delete-orphan")
    update_checks = relationship("ArticleUpdateCheck", back_populates="project", cascade="all, delete-orphan")

    @property
    def in_onboarding(self) -> bool:
        return bool(self.onboarding_step) and self.onboarding_step != OnboardingStep.COMPLETE

    def metadata_value(self, key: str, default=None):
        """Read one fact from analysis_metadata."""
        return (self.analysis_metadata or {}).get(key, default)

    def repositories_for_analysis(self) -> list:
        """All repositories the sandbox should see, primary first."""
        repos = [{"repo": self.github_repo, "directory": self.github_repo.split("/")[-1],
                  "installation_id": self.installation_id}]
        for entry in self.repositories or []:
            if entry.get("repo") and entry.get("repo") != self.github_repo:
                repos.append(entry)
        return repos
