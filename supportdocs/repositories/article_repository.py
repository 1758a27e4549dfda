"""Article repository."""

from typing import Dict, List

from ..models import Article, Recommendation
from ..models.statuses import RecommendationStatus, RunStatus
from ..exceptions import ArticleNotFoundError
from .base import BaseRepository


class ArticleRepository(BaseRepository[Article]):
    model_class = Article
    not_found_error = ArticleNotFoundError

    def create_from_recommendation(self, recommendation: Recommendation) -> Article:
        """Create a pending article for a recommendation and mark it generated."""
        article = Article(
            project_id=recommendation.project_id,
            recommendation_id=recommendation.id,
            section_id=recommendation.section_id,
            title=recommendation.title,
            generation_status=RunStatus.PENDING,
        )
        recommendation.status = RecommendationStatus.GENERATED
        self.db.add(article)
        self.db.commit()
        self.db.refresh(article)
        return article

    def list_for_project(self, project_id: str) -> List[Article]:
        return (
            self.db.query(Article)
            .filter(Article.project_id == project_id)
            .order_by(Article.created_at.asc())
            .all()
        )

    def titles(self, project_id: str) -> List[str]:
        return [a.title for a in self.list_for_project(project_id)]

    def completed_for_project(self, project_id: str) -> List[Article]:
        return (
            self.db.query(Article)
            .filter(Article.project_id == project_id, Article.generation_status == RunStatus.COMPLETED)
            .order_by(Article.created_at.asc())
            .all()
        )

    def index_by_id(self, project_id: str) -> Dict[str, Article]:
        return {a.id: a for a in self.list_for_project(project_id)}
