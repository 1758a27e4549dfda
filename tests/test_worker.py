"""Tests for the job queue and the polling worker.

process_job and the Worker open their own sessions, so tests call
``db.expire_all()`` before reading rows those sessions changed.
"""

from datetime import datetime, timedelta, timezone

import pytest

from supportdocs.exceptions import JobNotFoundError
from supportdocs.models import Article, GenerationJob, UsageRecord, Update
from supportdocs.models.statuses import JobStatus, RunStatus
from supportdocs.services.job_service import JobService
from supportdocs.worker import Worker, process_job, recover_stale, run_weekly_sweep
from tests.conftest import make_article, make_project, make_update


def _long_ago() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=2)


class TestJobService:
    """Enqueue deduplication, compare-and-set claims and retry accounting."""

    def test_enqueue_dedups_active_jobs(self, db):
        service = JobService(db)
        first = service.enqueue("generate_css", "p1", project_id="p1")
        assert service.enqueue("generate_css", "p1", project_id="p1").id == first.id
        assert service.enqueue("analyze_codebase", "p1", project_id="p1").id != first.id

    def test_finished_job_does_not_block_a_new_one(self, db):
        service = JobService(db)
        first = service.enqueue("generate_css", "p1")
        service.complete(first.id)
        assert service.enqueue("generate_css", "p1").id != first.id

    def test_claim_next_takes_oldest_once(self, db):
        service = JobService(db)
        job = service.enqueue("generate_css", "p1")

        claimed = service.claim_next()
        assert claimed.id == job.id
        assert claimed.status == JobStatus.RUNNING
        assert claimed.started_at is not None
        assert service.claim_next() is None

    def test_fail_requeues_then_fails_permanently(self, db):
        service = JobService(db, max_retries=1)
        job = service.enqueue("generate_css", "p1")

        retried = service.fail(job.id, "database went away")
        assert retried.status == JobStatus.QUEUED
        assert retried.error_message == "Retry after: database went away"

        failed = service.fail(job.id, "database went away")
        assert failed.status == JobStatus.FAILED
        assert failed.retry_count == 2
        assert failed.completed_at is not None

    def test_unknown_job(self, db):
        with pytest.raises(JobNotFoundError):
            JobService(db).complete("missing")

    def test_fail_stale_running(self, db):
        service = JobService(db, max_retries=0)
        old = service.enqueue("generate_css", "p1")
        fresh = service.enqueue("generate_css", "p2")
        for job, started in ((old, _long_ago()), (fresh, datetime.now(timezone.utc))):
            job.status = JobStatus.RUNNING
            job.started_at = started
        db.commit()

        cutoff = datetime.now(timezone.utc) - timedelta(hours=1)
        assert service.fail_stale_running(cutoff) == 1

        db.refresh(old)
        db.refresh(fresh)
        assert old.status == JobStatus.FAILED
        assert fresh.status == JobStatus.RUNNING

    def test_jobs_for_project(self, db):
        service = JobService(db)
        service.enqueue("generate_css", "p1", project_id="p1")
        service.enqueue("analyze_codebase", "p1", project_id="p1")
        service.enqueue("generate_css", "p2", project_id="p2")
        assert len(service.get_jobs_for_project("p1")) == 2


class TestProcessJob:

    def test_completes_queue_row_and_target(self, db, deps, runner):
        project = make_project(db)
        update = make_update(db, project)
        job = JobService(db).enqueue("analyze_commit", update.id, project_id=project.id)
        runner.script({"content.md": "## Login fix"})

        process_job(job.id, job.job_type, job.entity_id, job.payload, deps)

        db.expire_all()
        assert db.get(GenerationJob, job.id).status == JobStatus.COMPLETED
        assert db.get(Update, update.id).analysis_status == RunStatus.COMPLETED

    def test_pipeline_failure_still_completes_queue_row(self, db, deps, runner):
        project = make_project(db)
        article = make_article(db, project)
        job = JobService(db).enqueue("generate_article", article.id, project_id=project.id)
        runner.script(exit_code=1)

        process_job(job.id, job.job_type, job.entity_id, job.payload, deps)

        db.expire_all()
        assert db.get(GenerationJob, job.id).status == JobStatus.COMPLETED
        assert db.get(Article, article.id).generation_status == RunStatus.FAILED
        assert db.query(UsageRecord).count() == 1

    def test_unknown_job_type_is_failed(self, db, deps):
        job = JobService(db).enqueue("reticulate_splines", "x")

        process_job(job.id, job.job_type, job.entity_id, job.payload, deps)

        db.expire_all()
        stored = db.get(GenerationJob, job.id)
        assert stored.status == JobStatus.QUEUED
        assert "Unknown job type" in stored.error_message
        assert stored.retry_count == 1


class TestWorker:

    def test_poll_once_runs_claimed_jobs(self, db, settings, deps, runner):
        project = make_project(db)
        updates = [make_update(db, project, commit_sha=c * 40) for c in "de"]
        for update in updates:
            JobService(db).enqueue("analyze_commit", update.id, project_id=project.id)
        runner.script({"content.md": "## Changes"})

        worker = Worker(settings, deps)
        assert worker.poll_once() == 2
        worker.pool.shutdown(wait=True)

        db.expire_all()
        statuses = {j.status for j in db.query(GenerationJob).all()}
        assert statuses == {JobStatus.COMPLETED}
        assert len(runner.invocations) == 2

    def test_poll_with_empty_queue(self, settings, deps):
        worker = Worker(settings, deps)
        assert worker.poll_once() == 0
        worker.pool.shutdown(wait=True)

    def test_recover_stale_covers_entities_and_rows(self, db, deps):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.RUNNING, generation_started_at=_long_ago())
        job = JobService(db).enqueue("generate_article", article.id, project_id=project.id)
        job.status = JobStatus.RUNNING
        job.started_at = _long_ago()
        db.commit()

        assert recover_stale(deps) == 2

        db.expire_all()
        assert db.get(Article, article.id).generation_status == RunStatus.FAILED
        assert db.get(GenerationJob, job.id).status == JobStatus.QUEUED

    def test_weekly_sweep_entry_point(self, db, deps, github):
        make_project(db, update_strategy="weekly")
        github.list_merged_pull_requests.return_value = [
            {"number": 3, "title": "Dark mode", "merge_commit_sha": "3" * 40,
             "merged_at": datetime(2026, 10, 1, tzinfo=timezone.utc)},
        ]

        assert run_weekly_sweep(deps) == 1

        db.expire_all()
        assert [j.job_type for j in db.query(GenerationJob).all()] == ["analyze_pr"]
