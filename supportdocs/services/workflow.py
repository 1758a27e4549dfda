"""Workflow state machine for every status field the pipeline owns.

Transitions into ``running`` are compare-and-set and committed before the
sandbox starts, so a crashed orchestrator leaves an observable non-terminal
state and a concurrent second trigger cannot start a duplicate run.
Transitions out of ``running`` all go through ``_resolve``: it writes the
terminal status in the same transaction as the derived records the job
staged, then fires cascades and publishes the terminal event.

Status columns:
    Project.analysis_status            pending -> running -> completed | failed
    Project.sections_generation_status pending -> running -> completed | failed
    Section.recommendations_status     NULL -> running -> completed | failed
    Article.generation_status          pending -> running -> completed | failed
    Update.analysis_status             pending -> running -> completed | failed
    ArticleUpdateCheck.status          pending -> running -> completed | failed
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..exceptions import ValidationError
from ..models import Article, ArticleUpdateCheck, ArticleUpdateSuggestion, Project, Section, Update
from ..models.statuses import (
    OnboardingStep,
    ReviewStatus,
    RunStatus,
    SuggestionStatus,
    SuggestionType,
)
from ..pipeline.content import article_placeholder, commit_placeholder, pull_request_placeholder, regeneration_guidance
from ..repositories import (
    ArticleRepository,
    ProjectRepository,
    SectionRepository,
    UpdateCheckRepository,
    UpdateRepository,
)
from .job_service import JobService
from .notifications import LoggingNotificationSink, NotificationEvent, NotificationSink

logger = logging.getLogger(__name__)

# Anything that is not running may be started again (re-analysis, retry).
STARTABLE = (None, RunStatus.PENDING, RunStatus.COMPLETED, RunStatus.FAILED)


@dataclass(frozen=True)
class StatusField:
    """One status column: where it lives and which entry point drives it."""
    entity_type: str
    repository: type
    column: str
    started_at_column: str
    entry_point: str


PROJECT_ANALYSIS = StatusField("project", ProjectRepository, "analysis_status",
                               "analysis_started_at", "analyze-codebase")
PROJECT_SECTIONS = StatusField("project_sections", ProjectRepository, "sections_generation_status",
                               "sections_generation_started_at", "suggest-sections")
SECTION_RECOMMENDATIONS = StatusField("section", SectionRepository, "recommendations_status",
                                      "recommendations_started_at", "generate-section-recommendations")
ARTICLE_GENERATION = StatusField("article", ArticleRepository, "generation_status",
                                 "generation_started_at", "generate-article")
UPDATE_ANALYSIS = StatusField("update", UpdateRepository, "analysis_status",
                              "analysis_started_at", "analyze-commit")
UPDATE_CHECK = StatusField("article_update_check", UpdateCheckRepository, "status",
                           "started_at", "check-article-updates")

ALL_FIELDS = (PROJECT_ANALYSIS, PROJECT_SECTIONS, SECTION_RECOMMENDATIONS,
              ARTICLE_GENERATION, UPDATE_ANALYSIS, UPDATE_CHECK)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStateMachine:
    """Owns status transitions and the cascades they imply."""

    def __init__(self, db: Session, settings: Settings, sink: Optional[NotificationSink] = None):
        self.db = db
        self.settings = settings
        self.sink = sink or LoggingNotificationSink()
        self.projects = ProjectRepository(db)
        self.sections = SectionRepository(db)
        self.checks = UpdateCheckRepository(db)
        self.jobs = JobService(db, max_retries=settings.job_max_retries)

    # ------------------------------------------------------------------
    # Into running
    # ------------------------------------------------------------------

    def begin(self, status_field: StatusField, entity_id: str) -> bool:
        """Compare-and-set the entity into ``running``.

        Returns False when it is already running (a concurrent run owns it)
        or no longer exists; the caller must then do nothing.
        """
        repo = status_field.repository(self.db)
        started = repo.try_set_status(
            entity_id,
            status_field.column,
            STARTABLE,
            RunStatus.RUNNING,
            **{status_field.started_at_column: _now()},
        )
        if not started:
            logger.info(f"{status_field.entity_type} {entity_id} is already running or gone; skipping")
        return started

    def is_running(self, status_field: StatusField, entity) -> bool:
        return getattr(entity, status_field.column) == RunStatus.RUNNING

    # ------------------------------------------------------------------
    # Out of running
    # ------------------------------------------------------------------

    def _resolve(self, status_field: StatusField, entity_id: str, outcome: str,
                 message: Optional[str] = None, project_id: Optional[str] = None,
                 **values: Any) -> bool:
        """Move running -> outcome together with everything staged in the session.

        If the entity is no longer running (deleted, or failed by stale
        recovery) the staged changes are rolled back and nothing is published.
        """
        repo = status_field.repository(self.db)
        owned = repo.try_set_status(entity_id, status_field.column, [RunStatus.RUNNING], outcome,
                                    commit=False, **values)
        if not owned:
            self.db.rollback()
            logger.info(f"{status_field.entity_type} {entity_id} no longer running; result discarded")
            return False
        self.db.commit()
        self.publish(status_field.entity_type, entity_id, outcome, message, project_id)
        return True

    def publish(self, entity_type: str, entity_id: str, outcome: str,
                message: Optional[str] = None, project_id: Optional[str] = None) -> None:
        event = NotificationEvent(entity_type=entity_type, entity_id=entity_id, outcome=outcome,
                                  message=message, project_id=project_id)
        try:
            self.sink.publish(event)
        except Exception:
            logger.exception("Failed to publish notification event")

    # -- project analysis ------------------------------------------------

    def complete_codebase_analysis(self, project: Project, commit_sha: Optional[str]) -> bool:
        project_id = project.id
        values: Dict[str, Any] = {"analyzed_at": _now()}
        if commit_sha:
            values["analysis_commit_sha"] = commit_sha
        if not self._resolve(PROJECT_ANALYSIS, project_id, RunStatus.COMPLETED,
                             "Repository analysis complete", project_id, **values):
            return False

        # Follow-on: suggest sections from the fresh analysis.
        self.projects.try_set_status(project_id, "sections_generation_status", STARTABLE,
                                     RunStatus.PENDING, sections_generation_started_at=None)
        self.jobs.enqueue("suggest_sections", project_id, project_id=project_id)

        project = self.projects.get_by_id(project_id)
        if project.onboarding_step == OnboardingStep.ANALYZE:
            self.advance_onboarding(project, OnboardingStep.SECTIONS)
        return True

    def fail_codebase_analysis(self, project_id: str, reason: str) -> bool:
        return self._resolve(PROJECT_ANALYSIS, project_id, RunStatus.FAILED,
                             f"Repository analysis failed: {reason}", project_id)

    # -- section suggestions ---------------------------------------------

    def complete_section_suggestions(self, project_id: str, count: int) -> bool:
        return self._resolve(PROJECT_SECTIONS, project_id, RunStatus.COMPLETED,
                             f"{count} section(s) suggested", project_id)

    def fail_section_suggestions(self, project_id: str, reason: str) -> bool:
        return self._resolve(PROJECT_SECTIONS, project_id, RunStatus.FAILED,
                             f"Section suggestions failed: {reason}", project_id)

    # -- section recommendations -----------------------------------------

    def complete_section_recommendations(self, section: Section, count: int) -> bool:
        section_id, project_id, name = section.id, section.project_id, section.name
        if not self._resolve(SECTION_RECOMMENDATIONS, section_id, RunStatus.COMPLETED,
                             f"New article ideas for {name}", project_id):
            return False
        project = self.projects.get_by_id_optional(project_id)
        if project and project.in_onboarding and self.sections.count_accepted_unfinished(project_id) == 0:
            self.complete_onboarding(project)
        return True

    def fail_section_recommendations(self, section: Section, reason: str) -> bool:
        return self._resolve(SECTION_RECOMMENDATIONS, section.id, RunStatus.FAILED,
                             f"We couldn't generate recommendations for {section.name}: {reason}",
                             section.project_id)

    def begin_all_sections(self, sections: List[Section]) -> List[Section]:
        """Start every section that is not already running; returns the ones this run owns."""
        return [s for s in sections if self.begin(SECTION_RECOMMENDATIONS, s.id)]

    def resolve_all_sections(self, project_id: str, section_ids: List[str], outcome: str,
                             message: Optional[str] = None) -> None:
        """Resolve all-section generation: one commit for the derived records and statuses.

        Onboarding completes on success and on failure so the user is never stuck.
        """
        repo = SectionRepository(self.db)
        resolved = [
            sid for sid in section_ids
            if repo.try_set_status(sid, "recommendations_status", [RunStatus.RUNNING], outcome, commit=False)
        ]
        self.db.commit()
        for sid in resolved:
            self.publish(SECTION_RECOMMENDATIONS.entity_type, sid, outcome, message, project_id)

        project = self.projects.get_by_id_optional(project_id)
        if project and project.in_onboarding:
            self.complete_onboarding(project)

    # -- articles --------------------------------------------------------

    def complete_article(self, article: Article, source_commit_sha: Optional[str]) -> bool:
        return self._resolve(ARTICLE_GENERATION, article.id, RunStatus.COMPLETED,
                             f"Article ready: {article.title}", article.project_id,
                             source_commit_sha=source_commit_sha)

    def fail_article(self, article: Article, reason: str) -> bool:
        return self._resolve(ARTICLE_GENERATION, article.id, RunStatus.FAILED,
                             f"Article generation failed: {reason}", article.project_id)

    def set_review_status(self, article: Article, review_status: str) -> Article:
        if review_status not in (ReviewStatus.UNREVIEWED, ReviewStatus.APPROVED, ReviewStatus.REJECTED):
            raise ValidationError(f"Unknown review status: {review_status}", field="review_status")
        if article.generation_status != RunStatus.COMPLETED:
            raise ValidationError("Articles can only be reviewed after generation completed",
                                  field="review_status")
        article.review_status = review_status
        self.db.commit()
        self.db.refresh(article)
        return article

    # -- commit / pull request analysis ----------------------------------

    def complete_update_analysis(self, update: Update) -> bool:
        """Resolve the update and advance the project's baseline to its commit."""
        update_id, project_id, sha = update.id, update.project_id, update.commit_sha
        if not self._resolve(UPDATE_ANALYSIS, update_id, RunStatus.COMPLETED,
                             f"Changelog ready: {update.title}", project_id):
            return False
        if sha:
            self._advance_baseline(project_id, sha)
        return True

    def _advance_baseline(self, project_id: str, sha: str) -> None:
        project = self.projects.get_by_id_optional(project_id)
        if project is None:
            return
        project.analysis_commit_sha = sha
        self.db.commit()
        logger.info(f"Baseline for project {project_id} advanced to {sha[:7]}")

    def fail_update_analysis(self, update: Update, reason: str) -> bool:
        return self._resolve(UPDATE_ANALYSIS, update.id, RunStatus.FAILED,
                             f"Analysis failed for {update.title}: {reason}", update.project_id)

    # -- article update checks -------------------------------------------

    def complete_update_check(self, check: ArticleUpdateCheck) -> bool:
        check_id, project_id = check.id, check.project_id
        self.db.flush()
        summary = self.checks.summary(check_id)
        return self._resolve(UPDATE_CHECK, check_id, RunStatus.COMPLETED,
                             f"{summary['total_suggestions']} update suggestion(s)", project_id,
                             results=summary, completed_at=_now())

    def fail_update_check(self, check: ArticleUpdateCheck, reason: str) -> bool:
        return self._resolve(UPDATE_CHECK, check.id, RunStatus.FAILED,
                             f"Article update check failed: {reason}", check.project_id,
                             results={"error": reason}, completed_at=_now())

    def accept_suggestion(self, suggestion: ArticleUpdateSuggestion) -> ArticleUpdateSuggestion:
        """Accept a suggestion; update_needed flags its article with regeneration guidance."""
        suggestion.status = SuggestionStatus.ACCEPTED
        if suggestion.suggestion_type == SuggestionType.UPDATE_NEEDED and suggestion.article is not None:
            suggestion.article.regeneration_guidance = regeneration_guidance(
                suggestion.reason, suggestion.suggested_changes, suggestion.affected_files
            )
        self.db.commit()
        self.db.refresh(suggestion)
        return suggestion

    def dismiss_suggestion(self, suggestion: ArticleUpdateSuggestion) -> ArticleUpdateSuggestion:
        suggestion.status = SuggestionStatus.DISMISSED
        self.db.commit()
        self.db.refresh(suggestion)
        return suggestion

    # -- onboarding ------------------------------------------------------

    def advance_onboarding(self, project: Project, step: str) -> None:
        if step not in OnboardingStep.STEPS:
            raise ValidationError(f"Unknown onboarding step: {step}", field="onboarding_step")
        project.onboarding_step = step
        self.db.commit()
        logger.info(f"Project {project.id} onboarding advanced to {step}")

    def complete_onboarding(self, project: Project) -> None:
        project.onboarding_step = None
        self.db.commit()
        logger.info(f"Project {project.id} onboarding complete")
        self.publish("project", project.id, RunStatus.COMPLETED, "Onboarding complete", project.id)

    # ------------------------------------------------------------------
    # Stale running recovery
    # ------------------------------------------------------------------

    def recover_stale(self, now: Optional[datetime] = None) -> int:
        """Fail entities left running past their timeout plus a grace period.

        Covers an orchestrator that died mid-job; a live job always resolves
        its own status.
        """
        now = now or _now()
        recovered = 0
        for status_field in ALL_FIELDS:
            repo = status_field.repository(self.db)
            budget = self.settings.timeout_for(status_field.entry_point) + self.settings.stale_running_grace_seconds
            cutoff = now - timedelta(seconds=budget)
            model = repo.model_class
            stale = (
                self.db.query(model)
                .filter(getattr(model, status_field.column) == RunStatus.RUNNING,
                        getattr(model, status_field.started_at_column) < cutoff)
                .all()
            )
            for entity in stale:
                if self._fail_stale(status_field, entity):
                    recovered += 1
        if recovered:
            logger.warning(f"Recovered {recovered} stale running entit(ies)")
        return recovered

    def _fail_stale(self, status_field: StatusField, entity) -> bool:
        reason = "The job stopped before finishing"
        if status_field is ARTICLE_GENERATION and entity.recommendation is not None:
            entity.content = article_placeholder(entity.recommendation)
        elif status_field is UPDATE_ANALYSIS:
            if entity.pull_request_number:
                entity.content = pull_request_placeholder(entity.pull_request_number, entity.title, None, None,
                                                          entity.commit_sha)
            else:
                entity.content = commit_placeholder(entity.commit_sha, entity.title, None, None)

        values: Dict[str, Any] = {}
        if status_field is UPDATE_CHECK:
            values = {"results": {"error": reason}, "completed_at": _now()}
        project_id = entity.id if isinstance(entity, Project) else entity.project_id
        return self._resolve(status_field, entity.id, RunStatus.FAILED, reason, project_id, **values)
