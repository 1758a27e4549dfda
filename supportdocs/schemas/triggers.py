"""Request bodies for job trigger endpoints."""

from pydantic import BaseModel, Field
from typing import Optional


class CommitAnalysisRequest(BaseModel):
    """Analyze one pushed commit."""
    commit_sha: str = Field(..., min_length=7, max_length=40)
    title: Optional[str] = None
    message: Optional[str] = None


class PullRequestAnalysisRequest(BaseModel):
    """Analyze one merged pull request."""
    number: int = Field(..., ge=1)
    title: Optional[str] = None
    body: Optional[str] = None
    merge_commit_sha: Optional[str] = Field(None, max_length=40)
    source_url: Optional[str] = None


class UpdateCheckRequest(BaseModel):
    """Check articles against a commit; defaults to the latest commit."""
    target_commit_sha: Optional[str] = Field(None, max_length=40)
