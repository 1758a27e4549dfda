"""Recommendation jobs: one section, all accepted sections, or the whole project."""

import logging
from typing import Any, Dict, List

from ..models import Project, Section
from ..models.statuses import RunStatus
from ..pipeline import SandboxInput, SandboxResult
from ..pipeline.results import GroupedRecommendations, ParseResult, RecommendationBatch
from ..repositories import (
    ArticleRepository,
    ProjectRepository,
    RecommendationRepository,
    SectionRepository,
    UpdateRepository,
)
from ..services.workflow import SECTION_RECOMMENDATIONS
from .base import PipelineJob

logger = logging.getLogger(__name__)


class GenerateSectionRecommendationsJob(PipelineJob):
    """Propose articles for a single accepted section."""

    job_type = "generate_section_recommendations"
    entry_point = "generate-section-recommendations"

    def load(self, entity_id: str):
        return SectionRepository(self.db).get_by_id_optional(entity_id)

    def begin(self, target: Section) -> bool:
        return self.workflow.begin(SECTION_RECOMMENDATIONS, target.id)

    def build_input(self, target: Section, payload: Dict[str, Any]) -> SandboxInput:
        project = target.project
        return self.contexts.for_section_recommendations(
            project,
            target,
            SectionRepository(self.db).accepted_for_project(project.id),
            ArticleRepository(self.db).titles(project.id),
            RecommendationRepository(self.db).active_titles(project.id),
        )

    def usage_metadata(self, target: Section) -> Dict[str, Any]:
        return {"section_id": target.id, "section_name": target.name}

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_recommendations(result.files)

    def succeed(self, target: Section, value: RecommendationBatch) -> None:
        created = self.persister.replace_section_recommendations(target, value.items)
        logger.info(f"Generated {len(created)} recommendation(s) for section {target.id}")
        self.workflow.complete_section_recommendations(target, len(created))

    def fail(self, target: Section, reason: str) -> None:
        self.workflow.fail_section_recommendations(target, reason)


class GenerateAllRecommendationsJob(PipelineJob):
    """Propose articles for every accepted section in one sandbox run.

    Seeing all sections at once lets the generator assign each idea to
    exactly one section. The sections this run claimed are resolved
    together, and onboarding completes whatever the outcome.
    """

    job_type = "generate_all_recommendations"
    entry_point = "generate-all-recommendations"

    def __init__(self, db, deps):
        super().__init__(db, deps)
        self.claimed: List[Section] = []
        self.claimed_ids: List[str] = []

    def load(self, entity_id: str):
        return ProjectRepository(self.db).get_by_id_optional(entity_id)

    def project_of(self, target: Project) -> Project:
        return target

    def begin(self, target: Project) -> bool:
        accepted = SectionRepository(self.db).accepted_for_project(target.id)
        if not accepted:
            logger.info(f"Project {target.id} has no accepted sections; nothing to generate")
            return False
        self.claimed = self.workflow.begin_all_sections(accepted)
        if not self.claimed:
            return False
        self.claimed_ids = [s.id for s in self.claimed]
        return True

    def build_input(self, target: Project, payload: Dict[str, Any]) -> SandboxInput:
        return self.contexts.for_all_recommendations(
            target,
            self.claimed,
            ArticleRepository(self.db).titles(target.id),
            RecommendationRepository(self.db).active_titles(target.id),
        )

    def usage_metadata(self, target: Project) -> Dict[str, Any]:
        return {"section_count": len(self.claimed_ids)}

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_grouped_recommendations(result.files)

    def succeed(self, target: Project, value: GroupedRecommendations) -> None:
        sections = SectionRepository(self.db)
        sections_by_slug = {
            s.slug: s for s in (sections.get_by_id_optional(sid) for sid in self.claimed_ids) if s is not None
        }
        total = self.persister.replace_grouped_recommendations(sections_by_slug, value)
        self.workflow.resolve_all_sections(
            target.id, self.claimed_ids, RunStatus.COMPLETED,
            f"Generated {total} recommendation(s) across {len(sections_by_slug)} section(s)",
        )

    def fail(self, target: Project, reason: str) -> None:
        self.workflow.resolve_all_sections(target.id, self.claimed_ids, RunStatus.FAILED,
                                           f"Recommendation generation failed: {reason}")


class GenerateProjectRecommendationsJob(PipelineJob):
    """Propose project-wide articles from the recent changelog."""

    job_type = "generate_project_recommendations"
    entry_point = "generate-project-recommendations"

    def load(self, entity_id: str):
        return ProjectRepository(self.db).get_by_id_optional(entity_id)

    def project_of(self, target: Project) -> Project:
        return target

    def begin(self, target: Project) -> bool:
        # No status column of its own; the queue's dedup keeps one run per project.
        return True

    def build_input(self, target: Project, payload: Dict[str, Any]) -> SandboxInput:
        return self.contexts.for_project_recommendations(
            target,
            UpdateRepository(self.db).recent(target.id),
            RecommendationRepository(self.db).active_titles(target.id),
        )

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_recommendations(result.files)

    def succeed(self, target: Project, value: RecommendationBatch) -> None:
        created = self.persister.replace_project_recommendations(target, value.items)
        self.db.commit()
        self.workflow.publish("project_recommendations", target.id, RunStatus.COMPLETED,
                              f"{len(created)} new article idea(s)", target.id)

    def fail(self, target: Project, reason: str) -> None:
        self.workflow.publish("project_recommendations", target.id, RunStatus.FAILED,
                              f"Recommendation generation failed: {reason}", target.id)
