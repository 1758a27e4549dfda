"""Pydantic schemas for API validation."""

from .jobs import GenerationJobResponse
from .projects import (
    ArticleResponse,
    OnboardingUpdate,
    ProjectCreate,
    ProjectResponse,
    RecommendationResponse,
    RepositoryRef,
    ReviewStatusUpdate,
    SectionResponse,
    SuggestionResponse,
    UpdateCheckResponse,
    UpdateResponse,
)
from .triggers import CommitAnalysisRequest, PullRequestAnalysisRequest, UpdateCheckRequest
from .usage import UsageRecordResponse, UsageTotals
from .events import NotificationEventResponse

__all__ = [
    "GenerationJobResponse",
    "ArticleResponse",
    "OnboardingUpdate",
    "ProjectCreate",
    "ProjectResponse",
    "RecommendationResponse",
    "RepositoryRef",
    "ReviewStatusUpdate",
    "SectionResponse",
    "SuggestionResponse",
    "UpdateCheckResponse",
    "UpdateResponse",
    "CommitAnalysisRequest",
    "PullRequestAnalysisRequest",
    "UpdateCheckRequest",
    "UsageRecordResponse",
    "UsageTotals",
    "NotificationEventResponse",
]
