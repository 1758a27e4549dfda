"""Generation job status endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..exceptions import JobNotFoundError
from ..models import GenerationJob
from ..schemas.jobs import GenerationJobResponse
from ..services.job_service import JobService

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("", response_model=List[GenerationJobResponse])
def list_jobs(
    project_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List queued and finished jobs, newest first, optionally for one project."""
    if project_id and not status:
        return JobService(db).get_jobs_for_project(project_id, limit)

    query = db.query(GenerationJob)
    if project_id:
        query = query.filter(GenerationJob.project_id == project_id)
    if status:
        query = query.filter(GenerationJob.status == status)
    return query.order_by(GenerationJob.created_at.desc()).limit(limit).all()


@router.get("/{job_id}", response_model=GenerationJobResponse)
def get_job(job_id: str, db: Session = Depends(get_db)):
    job = JobService(db).get_job(job_id)
    if not job:
        raise JobNotFoundError(job_id)
    return job
