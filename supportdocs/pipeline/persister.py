"""Map parsed results onto domain records.

Derived records are replaced with delete-then-insert inside the caller's
transaction, so applying the same result twice leaves the same final set
of records. Nothing here commits; the workflow state machine commits the
derived records together with the status change that resolves the run.
"""

import logging
from typing import Dict, Iterable, List, Tuple

from sqlalchemy.orm import Session

from ..exceptions import PersistenceError
from ..models import (
    Article,
    ArticleUpdateCheck,
    ArticleUpdateSuggestion,
    Project,
    Recommendation,
    Section,
    Update,
)
from ..models.statuses import SectionStatus, SectionType, SuggestionStatus, SuggestionType
from ..repositories import RecommendationRepository, SectionRepository, UpdateCheckRepository
from ..repositories.section_repository import slugify
from .content import article_placeholder, render_markdown
from .results import (
    ArticleDraft,
    ChangeAnalysis,
    CodebaseAnalysis,
    CssTheme,
    GroupedRecommendations,
    RecommendationItem,
    SectionProposal,
    SuggestionItem,
)

logger = logging.getLogger(__name__)

# analysis_metadata keys written by other jobs that a re-analysis keeps.
PRESERVED_METADATA_KEYS = ("compiled_css",)


class ResultPersister:
    """Writes parsed results into the session without committing."""

    def __init__(self, db: Session):
        self.db = db
        self.recommendations = RecommendationRepository(db)
        self.sections = SectionRepository(db)
        self.checks = UpdateCheckRepository(db)

    # -- recommendations -------------------------------------------------

    def _insert_recommendations(self, project_id: str, items: Iterable[RecommendationItem],
                                section_id=None, source_update_id=None) -> List[Recommendation]:
        return [
            self.recommendations.add(
                project_id=project_id,
                title=item.title,
                description=item.description,
                justification=item.justification,
                section_id=section_id,
                source_update_id=source_update_id,
            )
            for item in items
        ]

    def replace_update_recommendations(self, update: Update, items: List[RecommendationItem]) -> List[Recommendation]:
        removed = self.recommendations.delete_pending_for_update(update.id)
        created = self._insert_recommendations(update.project_id, items, source_update_id=update.id)
        logger.info(f"Replaced {removed} recommendation(s) with {len(created)} for update {update.id}")
        return created

    def replace_section_recommendations(self, section: Section, items: List[RecommendationItem]) -> List[Recommendation]:
        removed = self.recommendations.delete_pending_for_section(section.id)
        created = self._insert_recommendations(section.project_id, items, section_id=section.id)
        logger.info(f"Replaced {removed} recommendation(s) with {len(created)} for section {section.id}")
        return created

    def replace_grouped_recommendations(self, sections_by_slug: Dict[str, Section],
                                        grouped: GroupedRecommendations) -> int:
        """Replace recommendations of every section in ``sections_by_slug``.

        Every listed section is cleared, including sections the output did
        not mention. Slugs that match no section are skipped.
        """
        total = 0
        for slug, section in sections_by_slug.items():
            self.recommendations.delete_pending_for_section(section.id)
            items = grouped.by_section.get(slug, [])
            total += len(self._insert_recommendations(section.project_id, items, section_id=section.id))
        unknown = sorted(set(grouped.by_section) - set(sections_by_slug))
        if unknown:
            logger.warning(f"Skipping recommendations for unknown section slugs: {unknown}")
        return total

    def replace_project_recommendations(self, project: Project, items: List[RecommendationItem]) -> List[Recommendation]:
        removed = self.recommendations.delete_pending_project_wide(project.id)
        created = self._insert_recommendations(project.id, items)
        logger.info(f"Replaced {removed} project-wide recommendation(s) with {len(created)}")
        return created

    # -- articles --------------------------------------------------------

    def apply_article(self, article: Article, draft: ArticleDraft) -> None:
        if draft.raw_structured is not None:
            article.structured_content = draft.raw_structured
            article.content = render_markdown(draft.raw_structured)
        else:
            article.content = draft.content
        # Guidance is consumed by the generation it informed.
        article.regeneration_guidance = None

    def apply_article_fallback(self, article: Article, recommendation: Recommendation) -> None:
        article.content = article_placeholder(recommendation)

    # -- commit / pull request analysis ----------------------------------

    def apply_change_analysis(self, update: Update, analysis: ChangeAnalysis) -> None:
        update.title = analysis.title or update.title
        update.content = analysis.content
        if analysis.recommendations is not None:
            self.replace_update_recommendations(update, analysis.recommendations)

    # -- update checks ---------------------------------------------------

    def _validate_suggestion(self, item: SuggestionItem, articles_by_id: Dict[str, Article]) -> None:
        if item.suggestion_type not in SuggestionType.ALL:
            raise PersistenceError(f"Unknown suggestion type: {item.suggestion_type}", item.model_dump())
        if item.suggestion_type == SuggestionType.UPDATE_NEEDED and item.article_id not in articles_by_id:
            raise PersistenceError(
                f"update_needed suggestion references unknown article {item.article_id!r}",
                item.model_dump(),
            )

    def replace_suggestions(self, check: ArticleUpdateCheck, items: List[SuggestionItem],
                            articles_by_id: Dict[str, Article]) -> Tuple[int, int]:
        """Replace the check's suggestions; returns (persisted, dropped)."""
        self.checks.delete_suggestions(check.id)
        persisted = dropped = 0
        for item in items:
            try:
                self._validate_suggestion(item, articles_by_id)
            except PersistenceError as e:
                logger.warning(f"Dropping suggestion: {e.message}")
                dropped += 1
                continue
            article_id = item.article_id if item.article_id in articles_by_id else None
            self.db.add(ArticleUpdateSuggestion(
                check_id=check.id,
                article_id=article_id,
                suggestion_type=item.suggestion_type,
                priority=item.priority,
                status=SuggestionStatus.PENDING,
                reason=item.reason,
                affected_files=item.affected_files,
                suggested_changes=item.suggested_changes,
            ))
            persisted += 1
        self.db.flush()
        return persisted, dropped

    # -- project-level results -------------------------------------------

    def apply_codebase(self, project: Project, analysis: CodebaseAnalysis) -> None:
        metadata = dict(analysis.metadata)
        for key in PRESERVED_METADATA_KEYS:
            if key in (project.analysis_metadata or {}) and key not in metadata:
                metadata[key] = project.analysis_metadata[key]
        project.analysis_summary = analysis.summary
        project.analysis_metadata = metadata
        if analysis.overview:
            project.project_overview = analysis.overview
        if analysis.contextual_questions is not None:
            project.contextual_questions = analysis.contextual_questions

    def replace_section_suggestions(self, project: Project, proposals: List[SectionProposal]) -> List[Section]:
        """Replace still-pending AI sections; accepted, rejected and template sections stay."""
        self.sections.delete_pending_suggestions(project.id)
        self.db.flush()
        existing = self.sections.list_for_project(project.id)
        taken = {s.slug for s in existing}
        position = len(existing)
        created = []
        for proposal in proposals:
            slug = slugify(proposal.slug or proposal.name)
            if slug in taken:
                continue
            taken.add(slug)
            section = Section(
                project_id=project.id,
                name=proposal.name.strip(),
                slug=slug,
                description=proposal.description,
                icon=proposal.icon,
                position=position,
                section_type=SectionType.AI_GENERATED,
                status=SectionStatus.PENDING,
            )
            self.db.add(section)
            created.append(section)
            position += 1
        return created

    def apply_css(self, project: Project, theme: CssTheme) -> None:
        metadata = dict(project.analysis_metadata or {})
        metadata["compiled_css"] = theme.css
        project.analysis_metadata = metadata
