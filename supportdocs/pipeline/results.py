"""Typed results produced by the output parser.

Every entry point parses to either ``ParseSuccess(value)`` or
``ParseFailure(reason, excerpt)``. Payload types are pydantic models so
their shape is validated once here and trusted downstream.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, Field, field_validator

from ..models.statuses import SuggestionPriority

T = TypeVar("T")

# Characters of raw output kept on a failure for diagnostics.
EXCERPT_LIMIT = 500


@dataclass(frozen=True)
class ParseSuccess(Generic[T]):
    value: T
    ok = True


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    excerpt: str = ""
    ok = False

    @classmethod
    def from_raw(cls, reason: str, raw: Optional[str]) -> "ParseFailure":
        return cls(reason=reason, excerpt=(raw or "")[:EXCERPT_LIMIT])


ParseResult = Union[ParseSuccess, ParseFailure]


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class RecommendationItem(BaseModel):
    """One proposed article."""
    title: str
    description: Optional[str] = None
    justification: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class RecommendationBatch(BaseModel):
    """recommendations.json for a single section or the whole project."""
    items: List[RecommendationItem] = []


class GroupedRecommendations(BaseModel):
    """recommendations.json for all sections: section slug -> items."""
    by_section: Dict[str, List[RecommendationItem]] = {}

    @property
    def total(self) -> int:
        return sum(len(items) for items in self.by_section.values())


class ChangeAnalysis(BaseModel):
    """Commit or pull request analysis: changelog text plus proposed articles."""
    title: Optional[str] = None
    content: str
    # None when articles.json was absent or unusable
    recommendations: Optional[List[RecommendationItem]] = None


class ArticleStep(BaseModel):
    title: str = ""
    content: str = ""


class StructuredArticle(BaseModel):
    introduction: Optional[str] = None
    prerequisites: List[str] = []
    steps: List[ArticleStep] = []
    tips: List[str] = []
    summary: Optional[str] = None


class ArticleDraft(BaseModel):
    """article.json: structured when it has an introduction or steps, raw text otherwise."""
    structured: Optional[StructuredArticle] = None
    # The untouched structured document, stored as-is on the article.
    raw_structured: Optional[Dict[str, Any]] = None
    content: Optional[str] = None


class SuggestionItem(BaseModel):
    suggestion_type: str
    article_id: Optional[str] = None
    priority: str = SuggestionPriority.MEDIUM
    reason: Optional[str] = None
    affected_files: Optional[List[str]] = None
    suggested_changes: Optional[Dict[str, Any]] = None

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> str:
        """Closed enumeration; unknown or missing values become medium."""
        if isinstance(v, str) and v.strip().lower() in SuggestionPriority.ALL:
            return v.strip().lower()
        return SuggestionPriority.MEDIUM

    @field_validator("affected_files", mode="before")
    @classmethod
    def normalize_affected_files(cls, v: Any) -> Optional[List[str]]:
        # A lone path is common; anything else unusable is dropped, not the suggestion.
        if isinstance(v, str):
            return [v] if v.strip() else None
        if isinstance(v, list):
            return [f for f in v if isinstance(f, str)]
        return None


class UpdateCheckResult(BaseModel):
    suggestions: List[SuggestionItem] = []
    # Items dropped at parse time (unknown type, not an object).
    skipped: int = 0


class SectionProposal(BaseModel):
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class SectionSuggestions(BaseModel):
    sections: List[SectionProposal] = []


class CodebaseAnalysis(BaseModel):
    summary: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    commit_sha: Optional[str] = None
    overview: Optional[str] = None
    contextual_questions: Optional[List[Any]] = None


class CssTheme(BaseModel):
    css: str
