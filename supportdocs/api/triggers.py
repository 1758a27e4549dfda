"""Job trigger endpoints.

Every endpoint validates its target and enqueues one job; the worker does
the rest. A target that is already running answers 409.
"""

from fastapi import APIRouter, Depends
from typing import List, Optional

from ..schemas.jobs import GenerationJobResponse
from ..schemas.projects import ArticleResponse, SectionResponse, UpdateCheckResponse
from ..schemas.triggers import CommitAnalysisRequest, PullRequestAnalysisRequest, UpdateCheckRequest
from ..services.triggers import TriggerService
from .deps import get_trigger_service

router = APIRouter(prefix="/api", tags=["triggers"])


@router.post("/projects/{project_id}/analyze", response_model=GenerationJobResponse, status_code=202)
def analyze_codebase(project_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    """Queue a full codebase analysis. Section suggestions follow automatically."""
    return triggers.analyze_codebase(project_id)


@router.post("/projects/{project_id}/suggest-sections", response_model=GenerationJobResponse, status_code=202)
def suggest_sections(project_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    return triggers.suggest_sections(project_id)


@router.post("/projects/{project_id}/template-sections", response_model=List[SectionResponse], status_code=201)
def create_template_sections(project_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    """Create the four template sections. Existing ones are left alone."""
    return triggers.create_template_sections(project_id)


@router.post("/projects/{project_id}/css", response_model=GenerationJobResponse, status_code=202)
def generate_css(project_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    return triggers.generate_css(project_id)


@router.post("/projects/{project_id}/recommendations", response_model=GenerationJobResponse, status_code=202)
def generate_project_recommendations(project_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    """Queue project-wide recommendations drawn from recent updates."""
    return triggers.generate_project_recommendations(project_id)


@router.post("/projects/{project_id}/sections/recommendations", response_model=GenerationJobResponse,
             status_code=202)
def generate_all_recommendations(project_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    """Queue one run that recommends articles for every accepted section."""
    return triggers.generate_all_recommendations(project_id)


@router.post("/projects/{project_id}/commits", response_model=GenerationJobResponse, status_code=202)
def analyze_commit(
    project_id: str,
    request: CommitAnalysisRequest,
    triggers: TriggerService = Depends(get_trigger_service),
):
    return triggers.analyze_commit(project_id, request.commit_sha, title=request.title, message=request.message)


@router.post("/projects/{project_id}/pull-requests", response_model=GenerationJobResponse, status_code=202)
def analyze_pull_request(
    project_id: str,
    request: PullRequestAnalysisRequest,
    triggers: TriggerService = Depends(get_trigger_service),
):
    return triggers.analyze_pull_request(
        project_id,
        request.number,
        title=request.title,
        body=request.body,
        merge_commit_sha=request.merge_commit_sha,
        source_url=request.source_url,
    )


@router.post("/projects/{project_id}/update-checks", response_model=UpdateCheckResponse, status_code=202)
def check_article_updates(
    project_id: str,
    request: Optional[UpdateCheckRequest] = None,
    triggers: TriggerService = Depends(get_trigger_service),
):
    target = request.target_commit_sha if request else None
    return triggers.check_article_updates(project_id, target_commit_sha=target)


@router.post("/sections/{section_id}/recommendations", response_model=GenerationJobResponse, status_code=202)
def generate_section_recommendations(section_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    return triggers.generate_section_recommendations(section_id)


@router.post("/recommendations/{recommendation_id}/article", response_model=ArticleResponse, status_code=202)
def generate_article(recommendation_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    """Create the article for a recommendation and queue its generation."""
    return triggers.generate_article(recommendation_id)


@router.post("/articles/{article_id}/regenerate", response_model=ArticleResponse, status_code=202)
def regenerate_article(article_id: str, triggers: TriggerService = Depends(get_trigger_service)):
    return triggers.regenerate_article(article_id)
