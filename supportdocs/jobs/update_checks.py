"""Article update checks: which articles went stale between two commits."""

import logging
from typing import Any, Dict

from ..models import ArticleUpdateCheck
from ..pipeline import SandboxInput, SandboxResult
from ..pipeline.results import ParseResult, UpdateCheckResult
from ..repositories import ArticleRepository, UpdateCheckRepository
from ..services.workflow import UPDATE_CHECK
from .base import PipelineJob

logger = logging.getLogger(__name__)


class CheckArticleUpdatesJob(PipelineJob):
    job_type = "check_article_updates"
    entry_point = "check-article-updates"

    def load(self, entity_id: str):
        return UpdateCheckRepository(self.db).get_by_id_optional(entity_id)

    def begin(self, target: ArticleUpdateCheck) -> bool:
        return self.workflow.begin(UPDATE_CHECK, target.id)

    def build_input(self, target: ArticleUpdateCheck, payload: Dict[str, Any]) -> SandboxInput:
        articles = ArticleRepository(self.db).completed_for_project(target.project_id)
        return self.contexts.for_update_check(target.project, target, articles)

    def sandbox_config(self, target: ArticleUpdateCheck) -> Dict[str, str]:
        config = super().sandbox_config(target)
        config["TARGET_COMMIT"] = target.target_commit_sha
        config["BASE_COMMIT"] = target.base_commit_sha or ""
        return config

    def usage_metadata(self, target: ArticleUpdateCheck) -> Dict[str, Any]:
        return {"check_id": target.id}

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_suggestions(result.files)

    def succeed(self, target: ArticleUpdateCheck, value: UpdateCheckResult) -> None:
        articles_by_id = ArticleRepository(self.db).index_by_id(target.project_id)
        persisted, dropped = self.persister.replace_suggestions(target, value.suggestions, articles_by_id)
        if dropped or value.skipped:
            logger.info(f"Check {target.id}: kept {persisted} suggestion(s), "
                        f"dropped {dropped + value.skipped}")
        self.workflow.complete_update_check(target)

    def fail(self, target: ArticleUpdateCheck, reason: str) -> None:
        self.workflow.fail_update_check(target, reason)
