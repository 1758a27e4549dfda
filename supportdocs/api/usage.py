"""Usage reporting endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..repositories import ProjectRepository, UsageRepository
from ..schemas.usage import UsageRecordResponse, UsageTotals

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("", response_model=UsageTotals)
def usage_totals(project_id: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """Cost and token totals, overall or for one project, grouped by job type."""
    return UsageRepository(db).totals(project_id)


@router.get("/projects/{project_id}", response_model=List[UsageRecordResponse])
def project_usage(
    project_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    project = ProjectRepository(db).get_by_id(project_id)
    return UsageRepository(db).list_for_project(project.id, limit=limit)
