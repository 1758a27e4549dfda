"""Project endpoints: creation, pipeline status reads and onboarding."""

import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..models import ArticleUpdateCheck, Recommendation
from ..repositories import (
    ArticleRepository,
    ProjectRepository,
    SectionRepository,
    UpdateRepository,
)
from ..repositories.section_repository import slugify
from ..schemas.projects import (
    ArticleResponse,
    OnboardingUpdate,
    ProjectCreate,
    ProjectResponse,
    RecommendationResponse,
    SectionResponse,
    UpdateCheckResponse,
    UpdateResponse,
)
from ..services.workflow import WorkflowStateMachine
from .deps import get_workflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(request: ProjectCreate, db: Session = Depends(get_db)):
    """Create a project. Onboarding starts at the ``basics`` step."""
    project = ProjectRepository(db).create(
        name=request.name,
        slug=slugify(request.name),
        github_repo=request.github_repo,
        installation_id=request.installation_id,
        repositories=[r.model_dump() for r in request.repositories],
        model_id=request.model_id,
        update_strategy=request.update_strategy,
        user_context=request.user_context,
    )
    logger.info(f"Created project {project.id} for {project.github_repo}")
    return project


@router.get("", response_model=List[ProjectResponse])
def list_projects(db: Session = Depends(get_db)):
    return ProjectRepository(db).list_all()


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str, db: Session = Depends(get_db)):
    return ProjectRepository(db).get_by_id(project_id)


@router.get("/{project_id}/sections", response_model=List[SectionResponse])
def list_sections(project_id: str, db: Session = Depends(get_db)):
    project = ProjectRepository(db).get_by_id(project_id)
    return SectionRepository(db).list_for_project(project.id)


@router.get("/{project_id}/recommendations", response_model=List[RecommendationResponse])
def list_recommendations(
    project_id: str,
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    project = ProjectRepository(db).get_by_id(project_id)
    query = db.query(Recommendation).filter(Recommendation.project_id == project.id)
    if status:
        query = query.filter(Recommendation.status == status)
    return query.order_by(Recommendation.created_at.desc()).all()


@router.get("/{project_id}/articles", response_model=List[ArticleResponse])
def list_articles(project_id: str, db: Session = Depends(get_db)):
    project = ProjectRepository(db).get_by_id(project_id)
    return ArticleRepository(db).list_for_project(project.id)


@router.get("/{project_id}/updates", response_model=List[UpdateResponse])
def list_updates(
    project_id: str,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    project = ProjectRepository(db).get_by_id(project_id)
    return UpdateRepository(db).recent(project.id, limit=limit)


@router.get("/{project_id}/update-checks", response_model=List[UpdateCheckResponse])
def list_update_checks(
    project_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    project = ProjectRepository(db).get_by_id(project_id)
    return (
        db.query(ArticleUpdateCheck)
        .filter(ArticleUpdateCheck.project_id == project.id)
        .order_by(ArticleUpdateCheck.created_at.desc())
        .limit(limit)
        .all()
    )


@router.put("/{project_id}/onboarding", response_model=ProjectResponse)
def update_onboarding(
    project_id: str,
    request: OnboardingUpdate,
    db: Session = Depends(get_db),
    workflow: WorkflowStateMachine = Depends(get_workflow),
):
    """Move the onboarding wizard to another step, or finish it with ``step: null``."""
    project = ProjectRepository(db).get_by_id(project_id)
    if request.step is None:
        workflow.complete_onboarding(project)
    else:
        workflow.advance_onboarding(project, request.step)
    db.refresh(project)
    return project
