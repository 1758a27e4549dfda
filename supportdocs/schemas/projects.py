"""Project and pipeline entity schemas.

Responses expose the status columns the pipeline owns so a client can
poll them; content fields are included where the UI renders them.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Any, Dict, List, Optional


def _normalize_repo(v: str) -> str:
    v = v.strip().strip('/')
    if v.count('/') != 1:
        raise ValueError("Repository must be in 'owner/name' form")
    return v


class RepositoryRef(BaseModel):
    """One repository of a multi-repository project."""
    repo: str
    directory: Optional[str] = None
    installation_id: Optional[str] = None

    @field_validator('repo')
    @classmethod
    def validate_repo(cls, v: str) -> str:
        return _normalize_repo(v)


class ProjectCreate(BaseModel):
    """Schema for creating a project."""
    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(..., min_length=1, max_length=255)
    github_repo: str
    installation_id: Optional[str] = None
    repositories: List[RepositoryRef] = []
    model_id: Optional[str] = None
    update_strategy: Optional[str] = None
    user_context: Dict[str, Any] = {}

    @field_validator('github_repo')
    @classmethod
    def validate_github_repo(cls, v: str) -> str:
        return _normalize_repo(v)

    @field_validator('update_strategy')
    @classmethod
    def validate_strategy(cls, v: Optional[str]) -> Optional[str]:
        if v not in (None, "manual", "weekly"):
            raise ValueError("update_strategy must be 'manual' or 'weekly'")
        return v


class ProjectResponse(BaseModel):
    id: str
    name: str
    slug: str
    github_repo: str
    repositories: Optional[List[Dict[str, Any]]] = None
    analysis_status: str
    analysis_started_at: Optional[datetime] = None
    analyzed_at: Optional[datetime] = None
    analysis_commit_sha: Optional[str] = None
    analysis_summary: Optional[str] = None
    project_overview: Optional[str] = None
    contextual_questions: Optional[List[Any]] = None
    sections_generation_status: Optional[str] = None
    model_id: Optional[str] = None
    update_strategy: Optional[str] = None
    onboarding_step: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class SectionResponse(BaseModel):
    id: str
    project_id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None
    position: int
    section_type: str
    status: str
    recommendations_status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RecommendationResponse(BaseModel):
    id: str
    project_id: str
    section_id: Optional[str] = None
    source_update_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    justification: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


class ArticleResponse(BaseModel):
    id: str
    project_id: str
    recommendation_id: str
    section_id: Optional[str] = None
    title: str
    content: Optional[str] = None
    structured_content: Optional[Dict[str, Any]] = None
    generation_status: str
    review_status: str
    source_commit_sha: Optional[str] = None
    regeneration_guidance: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReviewStatusUpdate(BaseModel):
    """Schema for setting an article's review status."""
    review_status: str


class UpdateResponse(BaseModel):
    id: str
    project_id: str
    source_type: str
    commit_sha: Optional[str] = None
    pull_request_number: Optional[int] = None
    source_url: Optional[str] = None
    title: str
    content: Optional[str] = None
    analysis_status: str
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SuggestionResponse(BaseModel):
    id: str
    check_id: str
    article_id: Optional[str] = None
    suggestion_type: str
    priority: str
    status: str
    reason: Optional[str] = None
    affected_files: Optional[List[Any]] = None
    suggested_changes: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class UpdateCheckResponse(BaseModel):
    id: str
    project_id: str
    target_commit_sha: str
    base_commit_sha: Optional[str] = None
    status: str
    results: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    suggestions: List[SuggestionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class OnboardingUpdate(BaseModel):
    """Move onboarding to ``step``; null marks it complete."""
    step: Optional[str] = None
