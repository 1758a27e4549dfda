"""Recommendation repository.

Recommendations are derived records. Each producer (an update analysis, a
section generation, a project-wide generation) owns a scope, and
re-running the producer deletes the still-pending records in that scope
before inserting the new batch. Generated recommendations back an article
and rejected ones record a user decision, so neither is replaced.
"""

from typing import List, Optional

from ..models import Recommendation
from ..models.statuses import RecommendationStatus
from ..exceptions import RecommendationNotFoundError
from .base import BaseRepository


class RecommendationRepository(BaseRepository[Recommendation]):
    model_class = Recommendation
    not_found_error = RecommendationNotFoundError

    def _pending(self):
        return self.db.query(Recommendation).filter(
            Recommendation.status == RecommendationStatus.PENDING
        )

    def for_update(self, update_id: str) -> List[Recommendation]:
        return self.db.query(Recommendation).filter(Recommendation.source_update_id == update_id).all()

    def for_section(self, section_id: str) -> List[Recommendation]:
        return self.db.query(Recommendation).filter(Recommendation.section_id == section_id).all()

    def delete_pending_for_update(self, update_id: str) -> int:
        return (
            self._pending()
            .filter(Recommendation.source_update_id == update_id)
            .delete(synchronize_session=False)
        )

    def delete_pending_for_section(self, section_id: str) -> int:
        return (
            self._pending()
            .filter(
                Recommendation.section_id == section_id,
                Recommendation.source_update_id.is_(None),
            )
            .delete(synchronize_session=False)
        )

    def delete_pending_project_wide(self, project_id: str) -> int:
        """Delete pending recommendations tied to neither a section nor an update."""
        return (
            self._pending()
            .filter(
                Recommendation.project_id == project_id,
                Recommendation.section_id.is_(None),
                Recommendation.source_update_id.is_(None),
            )
            .delete(synchronize_session=False)
        )

    def add(
        self,
        project_id: str,
        title: str,
        description: Optional[str] = None,
        justification: Optional[str] = None,
        section_id: Optional[str] = None,
        source_update_id: Optional[str] = None,
    ) -> Recommendation:
        """Stage a pending recommendation in the current transaction."""
        recommendation = Recommendation(
            project_id=project_id,
            section_id=section_id,
            source_update_id=source_update_id,
            title=title,
            description=description,
            justification=justification,
            status=RecommendationStatus.PENDING,
        )
        self.db.add(recommendation)
        return recommendation

    def active_titles(self, project_id: str) -> List[str]:
        """Titles of pending or generated recommendations, for duplicate avoidance."""
        rows = (
            self.db.query(Recommendation.title)
            .filter(
                Recommendation.project_id == project_id,
                Recommendation.status.in_([RecommendationStatus.PENDING, RecommendationStatus.GENERATED]),
            )
            .order_by(Recommendation.created_at.asc())
            .all()
        )
        return [row[0] for row in rows]
