"""Trigger service: turn user actions and the weekly sweep into queued jobs.

Each trigger validates the target, applies the soft "already running"
guard (a friendly 409 for the common double-click; the job's own
compare-and-set is what actually prevents a duplicate run) and enqueues
exactly one job for one entity.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..exceptions import ConflictError, PipelineError, ValidationError
from ..models import Article, ArticleUpdateCheck, GenerationJob, Project, Section
from ..models.statuses import RecommendationStatus, RunStatus, SectionStatus
from ..repositories import (
    ArticleRepository,
    ProjectRepository,
    RecommendationRepository,
    SectionRepository,
    UpdateCheckRepository,
    UpdateRepository,
)
from .github_client import GitHubClient, TokenProvider
from .job_service import JobService

logger = logging.getLogger(__name__)

# Look-back window of the first sweep for a project with no updates yet.
SWEEP_DEFAULT_WINDOW = timedelta(weeks=1)


class TriggerService:
    """Enqueues pipeline jobs on behalf of the API and the scheduler."""

    def __init__(self, db: Session, settings: Settings, github: Optional[GitHubClient] = None,
                 tokens: Optional[TokenProvider] = None):
        self.db = db
        self.settings = settings
        self.github = github
        self.tokens = tokens
        self.jobs = JobService(db, max_retries=settings.job_max_retries)
        self.projects = ProjectRepository(db)
        self.sections = SectionRepository(db)
        self.articles = ArticleRepository(db)
        self.recommendations = RecommendationRepository(db)
        self.updates = UpdateRepository(db)
        self.checks = UpdateCheckRepository(db)

    def _guard(self, entity_type: str, entity_id: str, status: Optional[str]) -> None:
        if status == RunStatus.RUNNING:
            raise ConflictError(entity_type, entity_id)

    # -- project-level jobs ----------------------------------------------

    def analyze_codebase(self, project_id: str) -> GenerationJob:
        project = self.projects.get_by_id(project_id)
        self._guard("project", project.id, project.analysis_status)
        return self.jobs.enqueue("analyze_codebase", project.id, project_id=project.id)

    def suggest_sections(self, project_id: str) -> GenerationJob:
        project = self.projects.get_by_id(project_id)
        self._guard("project_sections", project.id, project.sections_generation_status)
        return self.jobs.enqueue("suggest_sections", project.id, project_id=project.id)

    def generate_css(self, project_id: str) -> GenerationJob:
        project = self.projects.get_by_id(project_id)
        return self.jobs.enqueue("generate_css", project.id, project_id=project.id)

    def generate_project_recommendations(self, project_id: str) -> GenerationJob:
        project = self.projects.get_by_id(project_id)
        return self.jobs.enqueue("generate_project_recommendations", project.id, project_id=project.id)

    def generate_all_recommendations(self, project_id: str) -> GenerationJob:
        project = self.projects.get_by_id(project_id)
        if not self.sections.accepted_for_project(project.id):
            raise ValidationError("Accept at least one section before generating recommendations",
                                  field="sections")
        return self.jobs.enqueue("generate_all_recommendations", project.id, project_id=project.id)

    def create_template_sections(self, project_id: str) -> List[Section]:
        project = self.projects.get_by_id(project_id)
        return self.sections.create_templates(project.id)

    # -- commit / pull request analysis ----------------------------------

    def analyze_commit(self, project_id: str, commit_sha: str, title: Optional[str] = None,
                       message: Optional[str] = None) -> GenerationJob:
        if not commit_sha:
            raise ValidationError("commit_sha is required", field="commit_sha")
        project = self.projects.get_by_id(project_id)
        update = self.updates.get_or_create_for_commit(project.id, commit_sha, title=title)
        self._guard("update", update.id, update.analysis_status)
        return self.jobs.enqueue("analyze_commit", update.id, project_id=project.id,
                                 payload={"title": title, "message": message})

    def analyze_pull_request(self, project_id: str, number: int, title: Optional[str] = None,
                             body: Optional[str] = None, merge_commit_sha: Optional[str] = None,
                             source_url: Optional[str] = None) -> GenerationJob:
        project = self.projects.get_by_id(project_id)
        update = self.updates.get_or_create_for_pull_request(
            project.id, number, title=title, merge_commit_sha=merge_commit_sha, source_url=source_url
        )
        self._guard("update", update.id, update.analysis_status)
        return self.jobs.enqueue("analyze_pr", update.id, project_id=project.id,
                                 payload={"title": title, "body": body})

    # -- sections and articles -------------------------------------------

    def generate_section_recommendations(self, section_id: str) -> GenerationJob:
        section = self.sections.get_by_id(section_id)
        if section.status != SectionStatus.ACCEPTED:
            raise ValidationError("Only accepted sections get recommendations", field="status")
        self._guard("section", section.id, section.recommendations_status)
        return self.jobs.enqueue("generate_section_recommendations", section.id,
                                 project_id=section.project_id)

    def generate_article(self, recommendation_id: str) -> Article:
        """Turn a pending recommendation into an article and queue its generation."""
        recommendation = self.recommendations.get_by_id(recommendation_id)
        if recommendation.article is not None:
            return self._queue_article(recommendation.article)
        if recommendation.status != RecommendationStatus.PENDING:
            raise ValidationError(f"Recommendation is {recommendation.status}", field="status")
        article = self.articles.create_from_recommendation(recommendation)
        return self._queue_article(article)

    def regenerate_article(self, article_id: str) -> Article:
        return self._queue_article(self.articles.get_by_id(article_id))

    def _queue_article(self, article: Article) -> Article:
        self._guard("article", article.id, article.generation_status)
        self.jobs.enqueue("generate_article", article.id, project_id=article.project_id)
        return article

    def check_article_updates(self, project_id: str, target_commit_sha: Optional[str] = None) -> ArticleUpdateCheck:
        """Create an update check from the project's baseline to ``target_commit_sha``.

        Without an explicit target the latest commit of the primary
        repository is used.
        """
        project = self.projects.get_by_id(project_id)
        target = target_commit_sha or self._latest_commit(project)
        if not target:
            raise ValidationError("Could not determine target commit", field="target_commit_sha")
        check = self.checks.create(project.id, target, base_commit_sha=project.analysis_commit_sha)
        self.jobs.enqueue("check_article_updates", check.id, project_id=project.id)
        return check

    def _latest_commit(self, project: Project) -> Optional[str]:
        if self.github is None:
            return None
        token = self.tokens.token_for(project.installation_id) if self.tokens else None
        return self.github.get_latest_commit_sha(project.github_repo, token)

    # -- scheduled sweep -------------------------------------------------

    def weekly_sweep(self) -> int:
        """Queue PR analysis for pull requests merged since each project's newest update.

        One failing project does not stop the sweep.
        """
        if self.github is None:
            logger.warning("Weekly sweep skipped: no repository host client configured")
            return 0

        queued = 0
        for project in self.projects.list_weekly_candidates():
            try:
                queued += self._sweep_project(project)
            except PipelineError as e:
                logger.error(f"Weekly sweep failed for project {project.id}: {e.message}")
        logger.info(f"Weekly sweep queued {queued} pull request analysis job(s)")
        return queued

    def _sweep_project(self, project: Project) -> int:
        since = self.projects.latest_update_at(project.id)
        if since is None:
            since = datetime.now(timezone.utc) - SWEEP_DEFAULT_WINDOW
        token = self.tokens.token_for(project.installation_id) if self.tokens else None

        merged = self.github.list_merged_pull_requests(project.github_repo, token, since=since)
        analyzed = self.updates.analyzed_pull_request_numbers(project.id)
        queued = 0
        for pr in merged:
            if pr["number"] in analyzed:
                continue
            self.analyze_pull_request(
                project.id,
                pr["number"],
                title=pr.get("title"),
                merge_commit_sha=pr.get("merge_commit_sha"),
            )
            queued += 1
        return queued
