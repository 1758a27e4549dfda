"""Project-level analysis jobs: codebase analysis and its section suggestion follow-on."""

import logging
from typing import Any, Dict

from ..exceptions import ConfigurationError
from ..models import Project
from ..pipeline import SandboxInput, SandboxResult
from ..pipeline.results import CodebaseAnalysis, ParseResult, SectionSuggestions
from ..repositories import ProjectRepository, SectionRepository
from ..services.workflow import PROJECT_ANALYSIS, PROJECT_SECTIONS
from .base import PipelineJob

logger = logging.getLogger(__name__)


class AnalyzeCodebaseJob(PipelineJob):
    """Summarize every repository of a project and record its baseline commit.

    Completion enqueues section suggestions and moves onboarding from
    "analyze" to "sections".
    """

    job_type = "analyze_codebase"
    entry_point = "analyze-codebase"
    # Main analysis and style analysis report usage separately.
    usage_files = ("usage_main.json", "usage_style.json")

    def load(self, entity_id: str):
        return ProjectRepository(self.db).get_by_id_optional(entity_id)

    def begin(self, target: Project) -> bool:
        return self.workflow.begin(PROJECT_ANALYSIS, target.id)

    def project_of(self, target: Project) -> Project:
        return target

    def secrets(self, target: Project) -> Dict[str, str]:
        secrets = super().secrets(target)
        if not secrets:
            raise ConfigurationError(
                f"No repository access token available for {target.github_repo}",
                missing="GITHUB_TOKEN",
            )
        return secrets

    def build_input(self, target: Project, payload: Dict[str, Any]) -> SandboxInput:
        return self.contexts.for_codebase(target)

    def usage_metadata(self, target: Project) -> Dict[str, Any]:
        return {"repositories": [r["repo"] for r in target.repositories_for_analysis()]}

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_codebase(result.files)

    def succeed(self, target: Project, value: CodebaseAnalysis) -> None:
        self.persister.apply_codebase(target, value)
        if value.contextual_questions:
            logger.info(f"Analysis produced {len(value.contextual_questions)} contextual question(s)")
        self.workflow.complete_codebase_analysis(target, value.commit_sha)

    def fail(self, target: Project, reason: str) -> None:
        self.workflow.fail_codebase_analysis(target.id, reason)


class SuggestSectionsJob(PipelineJob):
    """Propose documentation sections from the latest codebase analysis."""

    job_type = "suggest_sections"
    entry_point = "suggest-sections"

    def load(self, entity_id: str):
        return ProjectRepository(self.db).get_by_id_optional(entity_id)

    def begin(self, target: Project) -> bool:
        return self.workflow.begin(PROJECT_SECTIONS, target.id)

    def project_of(self, target: Project) -> Project:
        return target

    def build_input(self, target: Project, payload: Dict[str, Any]) -> SandboxInput:
        return self.contexts.for_sections(target, SectionRepository(self.db).list_for_project(target.id))

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_sections(result.files)

    def succeed(self, target: Project, value: SectionSuggestions) -> None:
        created = self.persister.replace_section_suggestions(target, value.sections)
        self.workflow.complete_section_suggestions(target.id, len(created))

    def fail(self, target: Project, reason: str) -> None:
        self.workflow.fail_section_suggestions(target.id, reason)
