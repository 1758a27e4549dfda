"""
Polling worker for pipeline jobs.

Checks the generation_jobs table every POLL_INTERVAL seconds, claims up
to WORKER_CONCURRENCY queued jobs with compare-and-set and runs each on a
thread pool with its own database session. Between polls it also:

- fails entities left ``running`` by a crashed worker (stale recovery)
- enqueues pull request analysis for weekly-sweep projects every
  SWEEP_INTERVAL seconds

Usage:
    python -m supportdocs.worker
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from .core.config import Settings, settings as default_settings
from .core.logging_config import job_id_var, setup_logging
from .database import SessionLocal, init_db
from .jobs import JOB_TYPES, JobDependencies
from .models import GenerationJob
from .pipeline.sandbox import ENTRY_POINTS
from .services.job_service import JobService
from .services.notifications import DatabaseNotificationSink, FanOutNotificationSink, LoggingNotificationSink
from .services.triggers import TriggerService
from .services.workflow import WorkflowStateMachine

logger = logging.getLogger("supportdocs.worker")


def process_job(job_id: str, job_type: str, entity_id: str, payload: Optional[dict],
                deps: JobDependencies) -> None:
    """
    Run one claimed job to completion.

    Pipeline failures are resolved on the target entity by the job itself,
    so the queue row is completed either way. Only an exception escaping
    the job (a bug, a lost database) fails the row, which re-queues it
    while retries remain.
    """
    token = job_id_var.set(job_id)
    db = SessionLocal()
    try:
        service = JobService(db, max_retries=deps.settings.job_max_retries)
        job_class = JOB_TYPES.get(job_type)
        if job_class is None:
            service.fail(job_id, f"Unknown job type: {job_type}")
            return

        logger.info(f"Processing job {job_id}: {job_type} for {entity_id}")
        started = time.monotonic()
        job_class(db, deps).run(entity_id, payload or {})
        service.complete(job_id)
        logger.info(f"Job {job_id} completed in {time.monotonic() - started:.1f}s")

    except Exception as e:
        logger.exception(f"Job {job_id} crashed")
        db.rollback()
        JobService(db, max_retries=deps.settings.job_max_retries).fail(job_id, str(e)[:2000])
    finally:
        db.close()
        job_id_var.reset(token)


def recover_stale(deps: JobDependencies) -> int:
    """Fail entities and queue rows whose worker died mid-run."""
    db = SessionLocal()
    try:
        recovered = WorkflowStateMachine(db, deps.settings, deps.sink).recover_stale()
        longest = max(deps.settings.timeout_for(ep) for ep in ENTRY_POINTS)
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=longest + deps.settings.stale_running_grace_seconds)
        recovered += JobService(db, max_retries=deps.settings.job_max_retries).fail_stale_running(cutoff)
        return recovered
    except Exception as e:
        logger.error(f"Stale recovery failed: {e}")
        db.rollback()
        return 0
    finally:
        db.close()


def run_weekly_sweep(deps: JobDependencies) -> int:
    """Enqueue PR analysis for every project on the weekly update strategy."""
    db = SessionLocal()
    try:
        return TriggerService(db, deps.settings, github=deps.github, tokens=deps.tokens).weekly_sweep()
    except Exception as e:
        logger.error(f"Failed to run weekly sweep: {e}")
        return 0
    finally:
        db.close()


class Worker:
    """Claims queued jobs and runs them on a bounded thread pool."""

    def __init__(self, settings: Settings, deps: Optional[JobDependencies] = None):
        self.settings = settings
        self.deps = deps or JobDependencies.from_settings(settings)
        self.pool = ThreadPoolExecutor(max_workers=settings.worker_concurrency,
                                       thread_name_prefix="supportdocs-job")
        self.in_flight: Dict[str, Future] = {}

    def _prune(self) -> None:
        for job_id, future in list(self.in_flight.items()):
            if future.done():
                del self.in_flight[job_id]

    def poll_once(self) -> int:
        """Claim as many jobs as there are free slots. Returns the number submitted."""
        self._prune()
        submitted = 0
        db = SessionLocal()
        try:
            service = JobService(db, max_retries=self.settings.job_max_retries)
            while len(self.in_flight) < self.settings.worker_concurrency:
                job: Optional[GenerationJob] = service.claim_next()
                if job is None:
                    break
                self.in_flight[job.id] = self.pool.submit(
                    process_job, job.id, job.job_type, job.entity_id, job.payload, self.deps
                )
                submitted += 1
        finally:
            db.close()
        return submitted

    def run_forever(self) -> None:
        logger.info(f"Worker started, polling every {self.settings.poll_interval}s "
                    f"with {self.settings.worker_concurrency} slot(s)")
        logger.info(f"Weekly sweep interval: {self.settings.sweep_interval}s")
        for warning in self.settings.validate_sandbox_config():
            logger.warning(warning)

        last_sweep = datetime.now(timezone.utc)
        recover_stale(self.deps)

        while True:
            try:
                now = datetime.now(timezone.utc)
                if (now - last_sweep).total_seconds() >= self.settings.sweep_interval:
                    logger.info("Weekly sweep triggered")
                    run_weekly_sweep(self.deps)
                    last_sweep = now

                recover_stale(self.deps)
                if not self.poll_once():
                    time.sleep(self.settings.poll_interval)

            except KeyboardInterrupt:
                logger.info("Worker shutting down")
                self.pool.shutdown(wait=True)
                break
            except Exception as e:
                logger.error(f"Worker error: {e}")
                time.sleep(self.settings.poll_interval)


def main() -> None:
    setup_logging(log_level=default_settings.log_level, log_format=default_settings.log_format)
    init_db()
    sink = FanOutNotificationSink(LoggingNotificationSink(), DatabaseNotificationSink())
    Worker(default_settings, JobDependencies.from_settings(default_settings, sink=sink)).run_forever()


if __name__ == "__main__":
    main()
