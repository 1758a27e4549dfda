"""Commit and pull request analysis: changelog entry, proposed articles, baseline advance."""

import logging
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError
from ..models import Update
from ..pipeline import SandboxInput, SandboxResult
from ..pipeline.content import commit_placeholder, pull_request_placeholder
from ..pipeline.results import ChangeAnalysis, ParseResult
from ..repositories import UpdateRepository
from ..services.workflow import UPDATE_ANALYSIS
from .base import PipelineJob

logger = logging.getLogger(__name__)


class _ChangeAnalysisJob(PipelineJob):
    """Shared flow of commit and pull request analysis.

    The diff and metadata are fetched after the update is marked running,
    so a hosting API failure resolves the update like any other failure.
    What was fetched is kept on the instance for the fallback content.
    """

    def __init__(self, db, deps):
        super().__init__(db, deps)
        self.title: Optional[str] = None
        self.body: Optional[str] = None
        self.diff: Optional[str] = None

    def load(self, entity_id: str):
        return UpdateRepository(self.db).get_by_id_optional(entity_id)

    def begin(self, target: Update) -> bool:
        return self.workflow.begin(UPDATE_ANALYSIS, target.id)

    def _host_token(self, target: Update) -> Optional[str]:
        if self.deps.github is None:
            raise ConfigurationError("No repository host client configured", missing="GITHUB_API_URL")
        tokens = self.deps.tokens
        return tokens.token_for(target.project.installation_id) if tokens else None

    def usage_metadata(self, target: Update) -> Dict[str, Any]:
        return {"update_id": target.id, "commit_sha": target.commit_sha,
                "pull_request_number": target.pull_request_number}

    def parse(self, result: SandboxResult) -> ParseResult:
        return self.parser.parse_change_analysis(result.files)

    def succeed(self, target: Update, value: ChangeAnalysis) -> None:
        self.persister.apply_change_analysis(target, value)
        self.workflow.complete_update_analysis(target)


class AnalyzeCommitJob(_ChangeAnalysisJob):
    job_type = "analyze_commit"
    entry_point = "analyze-commit"

    def build_input(self, target: Update, payload: Dict[str, Any]) -> SandboxInput:
        self.title = payload.get("title")
        self.body = payload.get("message")
        token = self._host_token(target)
        repo = target.project.github_repo
        if not (self.title and self.body):
            commit = self.deps.github.get_commit(repo, target.commit_sha, token)
            self.title = self.title or commit["title"]
            self.body = self.body or commit["message"]
        self.diff = self.deps.github.get_commit_diff(repo, target.commit_sha, token)
        return self.contexts.for_commit(target.project, target, self.title, self.body, self.diff)

    def fail(self, target: Update, reason: str) -> None:
        target.content = commit_placeholder(target.commit_sha, self.title or target.title, self.body, self.diff)
        self.workflow.fail_update_analysis(target, reason)


class AnalyzePullRequestJob(_ChangeAnalysisJob):
    job_type = "analyze_pr"
    entry_point = "analyze-pr"

    def build_input(self, target: Update, payload: Dict[str, Any]) -> SandboxInput:
        self.title = payload.get("title")
        self.body = payload.get("body")
        token = self._host_token(target)
        repo = target.project.github_repo
        number = target.pull_request_number

        pull = self.deps.github.get_pull_request(repo, number, token)
        self.title = self.title or pull["title"]
        self.body = self.body or pull["body"]
        if pull.get("merge_commit_sha") and not target.commit_sha:
            target.commit_sha = pull["merge_commit_sha"]
            self.db.commit()
        self.diff = self.deps.github.get_pull_request_diff(repo, number, token)
        return self.contexts.for_pull_request(target.project, target, self.title, self.body, self.diff)

    def fail(self, target: Update, reason: str) -> None:
        target.content = pull_request_placeholder(target.pull_request_number, self.title or target.title,
                                                  self.body, self.diff, target.commit_sha)
        self.workflow.fail_update_analysis(target, reason)
