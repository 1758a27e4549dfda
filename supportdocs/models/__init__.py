"""Database models."""

from .project import Project
from .section import Section
from .update import Update
from .recommendation import Recommendation
from .article import Article
from .article_update import ArticleUpdateCheck, ArticleUpdateSuggestion
from .usage_record import UsageRecord
from .generation_job import GenerationJob
from .notification_event import NotificationRecord

__all__ = [
    "Project",
    "Section",
    "Update",
    "Recommendation",
    "Article",
    "ArticleUpdateCheck",
    "ArticleUpdateSuggestion",
    "UsageRecord",
    "GenerationJob",
    "NotificationRecord",
]
