"""Turn sandbox output files into typed results.

The sandbox writes loosely structured text: JSON that may be wrapped in a
markdown fence or embedded in prose, plain markdown, or nothing at all.
Each ``parse_*`` method reads the files it knows about, validates the
minimal shape, and returns ``ParseSuccess`` or ``ParseFailure``. Nothing
raises past this module; a malformed file is data, not an exception.
"""

import functools
import json
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from ..models.statuses import SuggestionType
from .results import (
    ArticleDraft,
    ChangeAnalysis,
    CodebaseAnalysis,
    CssTheme,
    GroupedRecommendations,
    ParseFailure,
    ParseResult,
    ParseSuccess,
    RecommendationBatch,
    RecommendationItem,
    SectionProposal,
    SectionSuggestions,
    StructuredArticle,
    SuggestionItem,
    UpdateCheckResult,
)

logger = logging.getLogger(__name__)

OutputFiles = Mapping[str, str]

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?```\s*$")
_EMBEDDED_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_OBJECT = re.compile(r"\{[\s\S]*\}")


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def strip_fences(text: str) -> str:
    """Remove one leading and one trailing markdown code fence, if present."""
    content = text.strip()
    if content.startswith("```"):
        content = _LEADING_FENCE.sub("", content, count=1)
        content = _TRAILING_FENCE.sub("", content, count=1)
    return content.strip()


def extract_json_text(text: str) -> str:
    """Strip fences, then narrow to the outermost ``{...}`` when there is one."""
    content = strip_fences(text)
    match = _OBJECT.search(content)
    return match.group(0) if match else content


def extract_embedded_json(text: str) -> str:
    """Find a JSON object inside prose: a ```json block first, then a bare object."""
    match = _EMBEDDED_FENCE.search(text)
    if match:
        return match.group(1).strip()
    match = _OBJECT.search(text)
    if match:
        return match.group(0).strip()
    return strip_fences(text)


def read_text(files: OutputFiles, name: str) -> Optional[str]:
    """Stripped file content, or None when the file is missing or blank."""
    raw = files.get(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _never_raises(method: Callable[..., ParseResult]) -> Callable[..., ParseResult]:
    @functools.wraps(method)
    def wrapper(self, files: OutputFiles, *args, **kwargs) -> ParseResult:
        try:
            return method(self, files, *args, **kwargs)
        except Exception as e:
            logger.exception(f"Unexpected error in {method.__name__}")
            return ParseFailure.from_raw(f"Unexpected parser error: {e}", None)
    return wrapper


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class OutputParser:
    """Parses the well-known output files of each entry point."""

    def _recommendation_items(self, raw_items: Any) -> List[RecommendationItem]:
        items = []
        if not isinstance(raw_items, list):
            return items
        for raw in raw_items:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(RecommendationItem.model_validate(raw))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed recommendation: {e.errors()[0]['msg']}")
        return items

    def _articles_object(self, raw: Optional[str]) -> Optional[Dict[str, Any]]:
        """A recommendations file counts only if it is an object with an ``articles`` key."""
        if raw is None:
            return None
        try:
            parsed = json.loads(extract_json_text(raw))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse recommendations JSON: {e}")
            return None
        if not isinstance(parsed, dict) or "articles" not in parsed:
            return None
        return parsed

    @_never_raises
    def parse_recommendations(self, files: OutputFiles, filename: str = "recommendations.json") -> ParseResult:
        raw = read_text(files, filename)
        if raw is None:
            return ParseFailure("No output generated")
        parsed = self._articles_object(raw)
        if parsed is None:
            return ParseFailure.from_raw(f"{filename} is not an object with an 'articles' key", raw)
        return ParseSuccess(RecommendationBatch(items=self._recommendation_items(parsed["articles"])))

    @_never_raises
    def parse_grouped_recommendations(self, files: OutputFiles) -> ParseResult:
        raw = read_text(files, "recommendations.json")
        if raw is None:
            return ParseFailure("No output generated")
        try:
            parsed = json.loads(extract_json_text(raw))
        except json.JSONDecodeError:
            return ParseFailure.from_raw("Failed to parse recommendations JSON", raw)
        if not isinstance(parsed, dict):
            return ParseFailure.from_raw("recommendations.json must map section slugs to lists", raw)
        by_section = {
            slug: self._recommendation_items(items)
            for slug, items in parsed.items()
            if isinstance(items, list)
        }
        return ParseSuccess(GroupedRecommendations(by_section=by_section))

    @_never_raises
    def parse_change_analysis(self, files: OutputFiles) -> ParseResult:
        """Commit and pull request analysis: title.txt, content.md, articles.json."""
        content = read_text(files, "content.md")
        if content is None:
            return ParseFailure("No content generated")
        articles = self._articles_object(read_text(files, "articles.json"))
        # articles.json missing or malformed means "no opinion": leave prior
        # recommendations alone rather than replacing them with nothing.
        recommendations = self._recommendation_items(articles["articles"]) if articles else None
        return ParseSuccess(ChangeAnalysis(
            title=read_text(files, "title.txt"),
            content=content,
            recommendations=recommendations,
        ))

    @_never_raises
    def parse_article(self, files: OutputFiles) -> ParseResult:
        raw = read_text(files, "article.json")
        if raw is None:
            return ParseFailure("No content generated")
        try:
            parsed = json.loads(extract_json_text(raw))
        except json.JSONDecodeError as e:
            logger.warning(f"Article JSON parse error: {e}, falling back to raw content")
            return ParseSuccess(ArticleDraft(content=raw))

        if isinstance(parsed, dict) and (parsed.get("introduction") or parsed.get("steps")):
            try:
                structured = StructuredArticle.model_validate(parsed)
            except PydanticValidationError:
                logger.warning("Article JSON has an unexpected structure, keeping raw content")
                return ParseSuccess(ArticleDraft(content=raw))
            return ParseSuccess(ArticleDraft(structured=structured, raw_structured=parsed))

        logger.warning("Article JSON missing expected structure")
        return ParseSuccess(ArticleDraft(content=raw))

    @_never_raises
    def parse_suggestions(self, files: OutputFiles) -> ParseResult:
        raw = read_text(files, "suggestions.json")
        if raw is None:
            return ParseFailure("No suggestions output generated")
        try:
            parsed = json.loads(strip_fences(raw))
        except json.JSONDecodeError:
            return ParseFailure.from_raw("Failed to parse suggestions JSON", raw)
        if isinstance(parsed, dict):
            parsed = parsed.get("suggestions")
        if not isinstance(parsed, list):
            return ParseFailure.from_raw("suggestions.json must be a list of suggestions", raw)

        suggestions, skipped = [], 0
        for item in parsed:
            if not isinstance(item, dict):
                skipped += 1
                continue
            suggestion_type = item.get("type") or item.get("suggestion_type")
            if suggestion_type not in SuggestionType.ALL:
                logger.warning(f"Skipping suggestion with unknown type: {suggestion_type!r}")
                skipped += 1
                continue
            try:
                suggestions.append(SuggestionItem(
                    suggestion_type=suggestion_type,
                    article_id=item.get("article_id") or None,
                    priority=item.get("priority"),
                    reason=item.get("reason"),
                    affected_files=item.get("affected_files"),
                    suggested_changes=item.get("suggested_changes"),
                ))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed suggestion: {e.errors()[0]['msg']}")
                skipped += 1
        return ParseSuccess(UpdateCheckResult(suggestions=suggestions, skipped=skipped))

    @_never_raises
    def parse_sections(self, files: OutputFiles) -> ParseResult:
        raw = read_text(files, "sections.json")
        if raw is None:
            return ParseFailure("No sections generated")
        try:
            parsed = json.loads(strip_fences(raw))
        except json.JSONDecodeError:
            return ParseFailure.from_raw("Failed to parse sections JSON", raw)
        if isinstance(parsed, dict):
            parsed = parsed.get("sections")
        if not isinstance(parsed, list):
            return ParseFailure.from_raw("sections.json must contain a list of sections", raw)

        proposals = []
        for item in parsed:
            if not (isinstance(item, dict) and str(item.get("name") or "").strip()):
                continue
            try:
                proposals.append(SectionProposal.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed section {item.get('name')!r}: {e.errors()[0]['msg']}")
        return ParseSuccess(SectionSuggestions(sections=proposals))

    def _optional_json(self, files: OutputFiles, name: str, embedded: bool = False) -> Any:
        raw = read_text(files, name)
        if raw is None:
            return None
        text = extract_embedded_json(raw) if embedded else strip_fences(raw)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse {name}: {e}", extra={"excerpt": raw[:200]})
            return None

    @_never_raises
    def parse_codebase(self, files: OutputFiles) -> ParseResult:
        summary = read_text(files, "summary.md")
        if summary is None:
            return ParseFailure("No summary generated")

        metadata = self._optional_json(files, "metadata.json")
        if not isinstance(metadata, dict):
            metadata = {}

        target_users = self._optional_json(files, "target_users.json")
        if target_users is not None:
            metadata["target_users"] = target_users
        for name, key in (("style_context.json", "style_context"),
                          ("repository_relationships.json", "repository_relationships")):
            value = self._optional_json(files, name, embedded=True)
            if value is not None:
                metadata[key] = value

        questions = self._optional_json(files, "contextual_questions.json")
        if isinstance(questions, dict):
            questions = questions.get("questions")
        if not isinstance(questions, list):
            questions = None

        return ParseSuccess(CodebaseAnalysis(
            summary=summary,
            metadata=metadata,
            commit_sha=read_text(files, "commit_sha.txt"),
            overview=read_text(files, "overview.txt"),
            contextual_questions=questions,
        ))

    @_never_raises
    def parse_css(self, files: OutputFiles) -> ParseResult:
        css = read_text(files, "compiled_css.txt")
        if css is None:
            return ParseFailure("No CSS content generated")
        return ParseSuccess(CssTheme(css=css))
