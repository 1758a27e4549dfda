"""Article update check and suggestion repositories."""

from typing import Any, Dict, List, Optional

from ..models import ArticleUpdateCheck, ArticleUpdateSuggestion
from ..models.statuses import RunStatus, SuggestionPriority, SuggestionType
from ..exceptions import SuggestionNotFoundError, UpdateCheckNotFoundError
from .base import BaseRepository


class UpdateCheckRepository(BaseRepository[ArticleUpdateCheck]):
    model_class = ArticleUpdateCheck
    not_found_error = UpdateCheckNotFoundError

    def create(self, project_id: str, target_commit_sha: str,
               base_commit_sha: Optional[str] = None) -> ArticleUpdateCheck:
        check = ArticleUpdateCheck(
            project_id=project_id,
            target_commit_sha=target_commit_sha,
            base_commit_sha=base_commit_sha,
            status=RunStatus.PENDING,
        )
        self.db.add(check)
        self.db.commit()
        self.db.refresh(check)
        return check

    def suggestions(self, check_id: str) -> List[ArticleUpdateSuggestion]:
        """Suggestions of a check, most urgent first."""
        rows = (
            self.db.query(ArticleUpdateSuggestion)
            .filter(ArticleUpdateSuggestion.check_id == check_id)
            .order_by(ArticleUpdateSuggestion.created_at.asc())
            .all()
        )
        return sorted(rows, key=lambda s: SuggestionPriority.RANK.get(s.priority, 5))

    def delete_suggestions(self, check_id: str) -> int:
        return (
            self.db.query(ArticleUpdateSuggestion)
            .filter(ArticleUpdateSuggestion.check_id == check_id)
            .delete(synchronize_session=False)
        )

    def summary(self, check_id: str) -> Dict[str, Any]:
        """Totals stored in ``results`` when a check completes."""
        rows = (
            self.db.query(ArticleUpdateSuggestion)
            .filter(ArticleUpdateSuggestion.check_id == check_id)
            .all()
        )
        return {
            "total_suggestions": len(rows),
            "updates_needed": sum(1 for s in rows if s.suggestion_type == SuggestionType.UPDATE_NEEDED),
            "new_articles": sum(1 for s in rows if s.suggestion_type == SuggestionType.NEW_ARTICLE),
            "high_priority": sum(1 for s in rows if s.priority == SuggestionPriority.HIGH),
            "critical": sum(1 for s in rows if s.priority == SuggestionPriority.CRITICAL),
        }


class SuggestionRepository(BaseRepository[ArticleUpdateSuggestion]):
    model_class = ArticleUpdateSuggestion
    not_found_error = SuggestionNotFoundError
