"""Data access repositories."""

from .base import BaseRepository
from .project_repository import ProjectRepository
from .section_repository import SectionRepository, TEMPLATE_SECTIONS
from .recommendation_repository import RecommendationRepository
from .article_repository import ArticleRepository
from .update_repository import UpdateRepository
from .update_check_repository import UpdateCheckRepository, SuggestionRepository
from .usage_repository import UsageRepository

__all__ = [
    "BaseRepository",
    "ProjectRepository",
    "SectionRepository",
    "TEMPLATE_SECTIONS",
    "RecommendationRepository",
    "ArticleRepository",
    "UpdateRepository",
    "UpdateCheckRepository",
    "SuggestionRepository",
    "UsageRepository",
]
