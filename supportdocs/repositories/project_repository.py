"""Project repository."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func

from ..models import Project, Update
from ..models.statuses import OnboardingStep
from ..exceptions import ProjectNotFoundError
from .base import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    """Queries over projects, including the scheduled-sweep candidates."""

    model_class = Project
    not_found_error = ProjectNotFoundError

    def create(self, name: str, slug: str, github_repo: str, **fields) -> Project:
        project = Project(name=name, slug=slug, github_repo=github_repo, **fields)
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)
        return project

    def list_all(self) -> List[Project]:
        return self.db.query(Project).order_by(Project.created_at.asc()).all()

    def list_weekly_candidates(self) -> List[Project]:
        """Projects that finished onboarding and opted into the weekly sweep."""
        return (
            self.db.query(Project)
            .filter(
                Project.update_strategy == "weekly",
                (Project.onboarding_step.is_(None))
                | (Project.onboarding_step.notin_(OnboardingStep.STEPS)),
            )
            .all()
        )

    def latest_update_at(self, project_id: str) -> Optional[datetime]:
        return (
            self.db.query(func.max(Update.created_at))
            .filter(Update.project_id == project_id)
            .scalar()
        )

    def merge_metadata(self, project: Project, **facts) -> None:
        """Write facts into analysis_metadata without touching the other keys.

        JSON columns are replaced, not mutated, so SQLAlchemy sees the change.
        """
        metadata = dict(project.analysis_metadata or {})
        metadata.update(facts)
        project.analysis_metadata = metadata
