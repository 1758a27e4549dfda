"""Single-entity reads and the user actions that act on finished results."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..repositories import (
    ArticleRepository,
    SectionRepository,
    SuggestionRepository,
    UpdateCheckRepository,
    UpdateRepository,
)
from ..schemas.projects import (
    ArticleResponse,
    ReviewStatusUpdate,
    SectionResponse,
    SuggestionResponse,
    UpdateCheckResponse,
    UpdateResponse,
)
from ..services.workflow import WorkflowStateMachine
from .deps import get_workflow

router = APIRouter(prefix="/api", tags=["entities"])


@router.get("/sections/{section_id}", response_model=SectionResponse)
def get_section(section_id: str, db: Session = Depends(get_db)):
    return SectionRepository(db).get_by_id(section_id)


@router.get("/articles/{article_id}", response_model=ArticleResponse)
def get_article(article_id: str, db: Session = Depends(get_db)):
    return ArticleRepository(db).get_by_id(article_id)


@router.put("/articles/{article_id}/review", response_model=ArticleResponse)
def set_review_status(
    article_id: str,
    request: ReviewStatusUpdate,
    db: Session = Depends(get_db),
    workflow: WorkflowStateMachine = Depends(get_workflow),
):
    """Approve or reject a generated article. Only completed articles can be reviewed."""
    article = ArticleRepository(db).get_by_id(article_id)
    return workflow.set_review_status(article, request.review_status)


@router.get("/updates/{update_id}", response_model=UpdateResponse)
def get_update(update_id: str, db: Session = Depends(get_db)):
    return UpdateRepository(db).get_by_id(update_id)


@router.get("/update-checks/{check_id}", response_model=UpdateCheckResponse)
def get_update_check(check_id: str, db: Session = Depends(get_db)):
    repo = UpdateCheckRepository(db)
    check = repo.get_by_id(check_id)
    response = UpdateCheckResponse.model_validate(check)
    response.suggestions = [SuggestionResponse.model_validate(s) for s in repo.suggestions(check.id)]
    return response


@router.post("/suggestions/{suggestion_id}/accept", response_model=SuggestionResponse)
def accept_suggestion(
    suggestion_id: str,
    db: Session = Depends(get_db),
    workflow: WorkflowStateMachine = Depends(get_workflow),
):
    """Accept a suggestion; an ``update_needed`` one leaves guidance on its article."""
    return workflow.accept_suggestion(SuggestionRepository(db).get_by_id(suggestion_id))


@router.post("/suggestions/{suggestion_id}/dismiss", response_model=SuggestionResponse)
def dismiss_suggestion(
    suggestion_id: str,
    db: Session = Depends(get_db),
    workflow: WorkflowStateMachine = Depends(get_workflow),
):
    return workflow.dismiss_suggestion(SuggestionRepository(db).get_by_id(suggestion_id))
