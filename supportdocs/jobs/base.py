"""Shared run sequence for every pipeline job.

One job instance handles one execution for one target entity:

    load -> begin (compare-and-set into running) -> build context
         -> sandbox -> record usage -> parse -> persist + resolve

Every exception after ``begin`` is caught here and turned into a failed
resolution with fallback content, so the target never stays ``running``
once ``run`` returns. Exactly one usage record is written per attempt.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import ObjectDeletedError

from ..core.config import Settings
from ..exceptions import OutputParseError, PipelineError
from ..models import Project
from ..pipeline import (
    ContextBuilder,
    OutputParser,
    ResultPersister,
    SandboxExecutor,
    SandboxInput,
    SandboxResult,
    UsageTracker,
)
from ..pipeline.results import ParseResult
from ..pipeline.usage_tracker import DEFAULT_USAGE_FILES
from ..services.github_client import GitHubClient, TokenProvider
from ..services.notifications import LoggingNotificationSink, NotificationSink
from ..services.workflow import WorkflowStateMachine

logger = logging.getLogger(__name__)


@dataclass
class JobDependencies:
    """Long-lived collaborators shared by every job a worker runs."""
    settings: Settings
    executor: SandboxExecutor
    sink: NotificationSink
    github: Optional[GitHubClient] = None
    tokens: Optional[TokenProvider] = None

    @classmethod
    def from_settings(cls, settings: Settings, sink: Optional[NotificationSink] = None) -> "JobDependencies":
        github = GitHubClient(settings)
        issuer = github.create_installation_token if settings.github_app_jwt else None
        return cls(
            settings=settings,
            executor=SandboxExecutor(settings),
            sink=sink or LoggingNotificationSink(),
            github=github,
            tokens=TokenProvider(settings, issuer=issuer),
        )


class PipelineJob:
    """Template for a sandbox-backed job. Subclasses fill in the hooks."""

    job_type: str = ""
    entry_point: str = ""
    usage_files: Sequence[str] = DEFAULT_USAGE_FILES

    def __init__(self, db: Session, deps: JobDependencies):
        self.db = db
        self.deps = deps
        self.settings = deps.settings
        self.executor = deps.executor
        self.workflow = WorkflowStateMachine(db, deps.settings, deps.sink)
        self.contexts = ContextBuilder(deps.settings)
        self.parser = OutputParser()
        self.persister = ResultPersister(db)
        self.usage = UsageTracker(db)
        self._usage_recorded = False

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def load(self, entity_id: str):
        raise NotImplementedError

    def begin(self, target) -> bool:
        raise NotImplementedError

    def project_of(self, target) -> Project:
        return target.project

    def build_input(self, target, payload: Dict[str, Any]) -> SandboxInput:
        raise NotImplementedError

    def sandbox_config(self, target) -> Dict[str, str]:
        return self.contexts.sandbox_config(self.project_of(target))

    def secrets(self, target) -> Dict[str, str]:
        if self.deps.tokens is None:
            return {}
        return self.deps.tokens.repository_secrets(self.project_of(target).repositories_for_analysis())

    def usage_metadata(self, target) -> Dict[str, Any]:
        return {}

    def parse(self, result: SandboxResult) -> ParseResult:
        raise NotImplementedError

    def succeed(self, target, value) -> None:
        raise NotImplementedError

    def fail(self, target, reason: str) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, entity_id: str, payload: Optional[Dict[str, Any]] = None) -> None:
        target = self.load(entity_id)
        if target is None:
            logger.info(f"{self.job_type}: {entity_id} no longer exists; nothing to do")
            return
        if not self.begin(target):
            return

        try:
            self._execute(target, payload or {})
        except PipelineError as e:
            logger.warning(
                f"{self.job_type} failed for {entity_id}: {e.message}",
                extra={"error_code": e.error_code.value, "entity_id": entity_id},
            )
            self._finish_failed(target, e.message)
        except Exception as e:
            logger.exception(f"{self.job_type} crashed for {entity_id}")
            self._finish_failed(target, str(e) or type(e).__name__)

    def _execute(self, target, payload: Dict[str, Any]) -> None:
        sandbox_input = self.build_input(target, payload)
        result = self.executor.run(
            self.entry_point,
            sandbox_input.context,
            side_files=sandbox_input.side_files,
            secrets=self.secrets(target),
            config=self.sandbox_config(target),
            label=f"{self.job_type}_{target.id}",
        )
        self._record_usage(target, result.files, result.succeeded, result.error_message())
        result.raise_for_status()

        parsed = self.parse(result)
        if not parsed.ok:
            logger.warning(f"{self.entry_point} output rejected: {parsed.reason}",
                           extra={"excerpt": parsed.excerpt})
            raise OutputParseError(parsed.reason, parsed.excerpt)
        self.succeed(target, parsed.value)

    def _record_usage(self, target, files, success: bool, error: Optional[str]) -> None:
        self.usage.record(
            self.job_type,
            self.project_of(target).id,
            files,
            success,
            error_message=error,
            metadata=self.usage_metadata(target),
            usage_files=self.usage_files,
        )
        # Set only once a row exists, so a failure inside record() still gets one.
        self._usage_recorded = True

    def _finish_failed(self, target, reason: str) -> None:
        """Discard staged work, record the attempt if the sandbox never ran, resolve as failed."""
        self.db.rollback()
        try:
            if not self._usage_recorded:
                self._record_usage(target, None, False, reason)
            self.fail(target, reason)
        except ObjectDeletedError:
            self.db.rollback()
            logger.info(f"{self.job_type}: target was deleted mid-run; exiting quietly")
