"""Service for managing queued pipeline jobs."""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy import update as sa_update
from sqlalchemy.orm import Session
from ..exceptions import JobNotFoundError
from ..models.generation_job import GenerationJob
from ..models.statuses import JobStatus

logger = logging.getLogger(__name__)


class JobService:
    """
    Manages the lifecycle of pipeline jobs.

    Jobs are created by triggers (API calls, cascades, the weekly sweep),
    claimed by workers, and tracked through queued -> running ->
    completed/failed transitions. A second trigger for the same job type
    and entity while one is queued or running returns the existing job.
    """

    def __init__(self, db: Session, max_retries: int = 1):
        self.db = db
        self.max_retries = max_retries

    def enqueue(self, job_type: str, entity_id: str, project_id: Optional[str] = None,
                payload: Optional[dict] = None) -> GenerationJob:
        """
        Create a new job, deduplicating by job type and target entity.

        Args:
            job_type: Registered job type, e.g. "analyze_commit"
            entity_id: The entity the job owns
            project_id: Owning project, for listings
            payload: Extra arguments for the job

        Returns:
            The created or existing GenerationJob
        """
        existing = (
            self.db.query(GenerationJob)
            .filter(
                GenerationJob.job_type == job_type,
                GenerationJob.entity_id == entity_id,
                GenerationJob.status.in_([JobStatus.QUEUED, JobStatus.RUNNING]),
            )
            .first()
        )
        if existing:
            logger.info(f"Job already exists for {job_type} {entity_id}: {existing.id}")
            return existing

        job = GenerationJob(
            id=str(uuid.uuid4()),
            job_type=job_type,
            entity_id=entity_id,
            project_id=project_id,
            payload=payload or {},
            status=JobStatus.QUEUED,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Enqueued job {job.id}: {job_type} for {entity_id}")
        return job

    def claim_next(self) -> Optional[GenerationJob]:
        """
        Claim the oldest queued job for processing.

        The claim is a compare-and-set on status, so two workers polling
        at once never both get the same job.

        Returns:
            The claimed job, or None if no queued jobs exist
        """
        candidates = (
            self.db.query(GenerationJob.id)
            .filter(GenerationJob.status == JobStatus.QUEUED)
            .order_by(GenerationJob.created_at.asc())
            .limit(5)
            .all()
        )
        for (job_id,) in candidates:
            result = self.db.execute(
                sa_update(GenerationJob)
                .where(GenerationJob.id == job_id, GenerationJob.status == JobStatus.QUEUED)
                .values(status=JobStatus.RUNNING, started_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            if result.rowcount:
                job = self.get_job(job_id)
                logger.info(f"Claimed job {job.id}: {job.job_type} for {job.entity_id}")
                return job
        return None

    def _get_or_raise(self, job_id: str) -> GenerationJob:
        job = self.get_job(job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def complete(self, job_id: str) -> GenerationJob:
        """Mark a job as successfully completed."""
        job = self._get_or_raise(job_id)

        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Job {job_id} completed")
        return job

    def fail(self, job_id: str, error_message: str) -> GenerationJob:
        """
        Mark a job as failed.

        Used when the job runner itself crashed; pipeline failures are
        resolved on the entity and complete the job normally. If
        retry_count is still within max_retries the job is re-queued.

        Args:
            job_id: The job to mark as failed
            error_message: Description of what went wrong
        """
        job = self._get_or_raise(job_id)

        job.retry_count += 1

        if job.retry_count <= self.max_retries:
            job.status = JobStatus.QUEUED
            job.error_message = f"Retry after: {error_message}"
            logger.info(f"Job {job_id} failed, re-queuing (retry {job.retry_count})")
        else:
            job.status = JobStatus.FAILED
            job.error_message = error_message
            job.completed_at = datetime.now(timezone.utc)
            logger.warning(f"Job {job_id} failed permanently: {error_message}")

        self.db.commit()
        self.db.refresh(job)
        return job

    def get_jobs_for_project(self, project_id: str, limit: int = 20) -> List[GenerationJob]:
        """Get recent jobs for a project, newest first."""
        return (
            self.db.query(GenerationJob)
            .filter(GenerationJob.project_id == project_id)
            .order_by(GenerationJob.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_job(self, job_id: str) -> Optional[GenerationJob]:
        """Get a specific job by ID."""
        return self.db.get(GenerationJob, job_id)

    def fail_stale_running(self, started_before: datetime) -> int:
        """Fail (or re-queue) jobs whose worker died while running them."""
        jobs = (
            self.db.query(GenerationJob)
            .filter(GenerationJob.status == JobStatus.RUNNING, GenerationJob.started_at < started_before)
            .all()
        )
        for job in jobs:
            self.fail(job.id, "Worker stopped while the job was running")
        return len(jobs)
