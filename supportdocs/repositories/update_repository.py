"""Update repository (analyzed commits and pull requests)."""

from typing import List, Optional

from ..models import Update
from ..models.statuses import RunStatus, UpdateSource
from ..exceptions import UpdateNotFoundError
from .base import BaseRepository


class UpdateRepository(BaseRepository[Update]):
    model_class = Update
    not_found_error = UpdateNotFoundError

    def find_for_commit(self, project_id: str, commit_sha: str) -> Optional[Update]:
        return (
            self.db.query(Update)
            .filter(
                Update.project_id == project_id,
                Update.commit_sha == commit_sha,
                Update.source_type == UpdateSource.COMMIT,
            )
            .first()
        )

    def find_for_pull_request(self, project_id: str, number: int) -> Optional[Update]:
        return (
            self.db.query(Update)
            .filter(Update.project_id == project_id, Update.pull_request_number == number)
            .first()
        )

    def get_or_create_for_commit(self, project_id: str, commit_sha: str, title: Optional[str] = None,
                                 source_url: Optional[str] = None) -> Update:
        """Find the update for a commit, creating a pending one. Supports re-analysis."""
        update = self.find_for_commit(project_id, commit_sha)
        if update is None:
            update = Update(
                project_id=project_id,
                source_type=UpdateSource.COMMIT,
                commit_sha=commit_sha,
                title=title or f"Commit {commit_sha[:7]}",
                content="Analyzing changes...",
                source_url=source_url,
                analysis_status=RunStatus.PENDING,
            )
            self.db.add(update)
            self.db.commit()
            self.db.refresh(update)
        return update

    def get_or_create_for_pull_request(self, project_id: str, number: int, title: Optional[str] = None,
                                       merge_commit_sha: Optional[str] = None,
                                       source_url: Optional[str] = None) -> Update:
        update = self.find_for_pull_request(project_id, number)
        if update is None:
            update = Update(
                project_id=project_id,
                source_type=UpdateSource.PULL_REQUEST,
                pull_request_number=number,
                commit_sha=merge_commit_sha,
                title=title or f"PR #{number}",
                content="Analyzing changes...",
                source_url=source_url,
                analysis_status=RunStatus.PENDING,
            )
            self.db.add(update)
            self.db.commit()
            self.db.refresh(update)
        return update

    def recent(self, project_id: str, limit: int = 20) -> List[Update]:
        return (
            self.db.query(Update)
            .filter(Update.project_id == project_id)
            .order_by(Update.created_at.desc())
            .limit(limit)
            .all()
        )

    def analyzed_pull_request_numbers(self, project_id: str) -> set:
        rows = (
            self.db.query(Update.pull_request_number)
            .filter(Update.project_id == project_id, Update.pull_request_number.isnot(None))
            .all()
        )
        return {row[0] for row in rows}
