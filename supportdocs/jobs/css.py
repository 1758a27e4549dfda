"""Help-centre CSS theme generation."""

from typing import Any, Dict

from ..models import Project
from ..models.statuses import RunStatus
from ..pipeline import SandboxInput, SandboxResult
from ..pipeline.results import CssTheme, ParseResult
from ..repositories import ProjectRepository
from .base import PipelineJob


class GenerateCssJob(PipelineJob):
    """Compile a CSS theme from the project's style context.

    There is no status column; the outcome is only published as an event
    and a failure leaves the stored CSS untouched.
    """

    job_type = "generate_css"
    entry_point = "generate-css"

    def load(self, entity_id: str):
        return ProjectRepository(self.db).get_by_id_optional(entity_id)

    def project_of(self, target: Project) -> Project:
        return target

    def begin(self, target: Project) -> bool:
        return True

    def build_input(self, target: Project, payload: Dict[str, Any]) -> SandboxInput:
        return self.contexts.for_css(target)

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_css(result.files)

    def succeed(self, target: Project, value: CssTheme) -> None:
        self.persister.apply_css(target, value)
        self.db.commit()
        self.workflow.publish("project_css", target.id, RunStatus.COMPLETED,
                              f"Generated {len(value.css)} bytes of CSS", target.id)

    def fail(self, target: Project, reason: str) -> None:
        self.workflow.publish("project_css", target.id, RunStatus.FAILED,
                              f"CSS generation failed: {reason}", target.id)
