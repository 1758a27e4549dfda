"""Article generation."""

from typing import Any, Dict

from ..models import Article
from ..pipeline import SandboxInput, SandboxResult
from ..pipeline.results import ArticleDraft, ParseResult
from ..repositories import ArticleRepository
from ..services.workflow import ARTICLE_GENERATION
from .base import PipelineJob


class GenerateArticleJob(PipelineJob):
    """Write one article from its recommendation.

    On failure the article gets placeholder content built from the
    recommendation, so the reader never sees an empty page.
    """

    job_type = "generate_article"
    entry_point = "generate-article"

    def load(self, entity_id: str):
        return ArticleRepository(self.db).get_by_id_optional(entity_id)

    def begin(self, target: Article) -> bool:
        return self.workflow.begin(ARTICLE_GENERATION, target.id)

    def build_input(self, target: Article, payload: Dict[str, Any]) -> SandboxInput:
        recommendation = target.recommendation
        return self.contexts.for_article(target.project, target, recommendation, recommendation.source_update)

    def usage_metadata(self, target: Article) -> Dict[str, Any]:
        return {"article_id": target.id, "recommendation_id": target.recommendation_id}

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_article(result.files)

    def succeed(self, target: Article, value: ArticleDraft) -> None:
        self.persister.apply_article(target, value)
        self.workflow.complete_article(target, target.project.analysis_commit_sha)

    def fail(self, target: Article, reason: str) -> None:
        self.persister.apply_article_fallback(target, target.recommendation)
        self.workflow.fail_article(target, reason)
