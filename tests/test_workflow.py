"""Tests for WorkflowStateMachine: compare-and-set transitions, cascades and recovery."""

from datetime import datetime, timedelta, timezone

import pytest

from supportdocs.exceptions import ValidationError
from supportdocs.models import ArticleUpdateSuggestion, GenerationJob
from supportdocs.models.statuses import (
    OnboardingStep,
    ReviewStatus,
    RunStatus,
    SuggestionStatus,
    SuggestionType,
)
from supportdocs.repositories import ArticleRepository
from supportdocs.services.workflow import (
    ARTICLE_GENERATION,
    PROJECT_ANALYSIS,
    SECTION_RECOMMENDATIONS,
    UPDATE_ANALYSIS,
    UPDATE_CHECK,
    WorkflowStateMachine,
)
from tests.conftest import make_article, make_check, make_project, make_section, make_update


@pytest.fixture()
def workflow(db, settings, sink) -> WorkflowStateMachine:
    return WorkflowStateMachine(db, settings, sink)


def _long_ago() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=2)


class TestBegin:
    """Only one caller can move an entity into running."""

    def test_second_begin_loses(self, db, workflow):
        project = make_project(db)
        article = make_article(db, project)

        assert workflow.begin(ARTICLE_GENERATION, article.id) is True
        assert workflow.begin(ARTICLE_GENERATION, article.id) is False

        db.refresh(article)
        assert article.generation_status == RunStatus.RUNNING
        assert article.generation_started_at is not None

    def test_finished_entities_can_start_again(self, db, workflow):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.FAILED)
        assert workflow.begin(ARTICLE_GENERATION, article.id) is True

    def test_null_status_counts_as_startable(self, db, workflow):
        project = make_project(db)
        section = make_section(db, project)
        assert section.recommendations_status is None
        assert workflow.begin(SECTION_RECOMMENDATIONS, section.id) is True

    def test_missing_entity(self, workflow):
        assert workflow.begin(ARTICLE_GENERATION, "no-such-article") is False


class TestResolve:

    def test_result_discarded_when_no_longer_running(self, db, workflow, sink):
        project = make_project(db)
        article = make_article(db, project)
        workflow.begin(ARTICLE_GENERATION, article.id)
        # Stale recovery got there first.
        ArticleRepository(db).try_set_status(article.id, "generation_status", [RunStatus.RUNNING], RunStatus.FAILED)

        article.content = "late result"
        assert workflow.complete_article(article, "f" * 40) is False

        db.refresh(article)
        assert article.generation_status == RunStatus.FAILED
        assert article.content is None
        assert sink.recent() == []

    def test_completion_publishes_one_event(self, db, workflow, sink):
        project = make_project(db)
        article = make_article(db, project)
        workflow.begin(ARTICLE_GENERATION, article.id)

        assert workflow.complete_article(article, "f" * 40) is True

        db.refresh(article)
        assert article.source_commit_sha == "f" * 40
        events = sink.recent()
        assert len(events) == 1
        assert (events[0].entity_type, events[0].entity_id, events[0].outcome) == (
            "article", article.id, RunStatus.COMPLETED
        )
        assert events[0].project_id == project.id


class TestCodebaseAnalysis:

    def test_completion_cascades(self, db, workflow):
        project = make_project(db, onboarding_step=OnboardingStep.ANALYZE, analysis_status=RunStatus.PENDING)
        workflow.begin(PROJECT_ANALYSIS, project.id)

        assert workflow.complete_codebase_analysis(project, "e" * 40) is True

        db.refresh(project)
        assert project.analysis_status == RunStatus.COMPLETED
        assert project.analysis_commit_sha == "e" * 40
        assert project.analyzed_at is not None
        assert project.sections_generation_status == RunStatus.PENDING
        assert project.onboarding_step == OnboardingStep.SECTIONS
        jobs = db.query(GenerationJob).filter(GenerationJob.entity_id == project.id).all()
        assert [j.job_type for j in jobs] == ["suggest_sections"]

    def test_missing_commit_keeps_baseline(self, db, workflow):
        project = make_project(db)
        workflow.begin(PROJECT_ANALYSIS, project.id)
        workflow.complete_codebase_analysis(project, None)
        db.refresh(project)
        assert project.analysis_commit_sha == "0" * 40

    def test_failure_keeps_baseline(self, db, workflow):
        project = make_project(db)
        workflow.begin(PROJECT_ANALYSIS, project.id)
        workflow.fail_codebase_analysis(project.id, "timed out")
        db.refresh(project)
        assert project.analysis_status == RunStatus.FAILED
        assert project.analysis_commit_sha == "0" * 40


class TestUpdateAnalysis:

    def test_completion_advances_baseline(self, db, workflow):
        project = make_project(db)
        update = make_update(db, project, commit_sha="d" * 40)
        workflow.begin(UPDATE_ANALYSIS, update.id)

        workflow.complete_update_analysis(update)

        db.refresh(project)
        assert project.analysis_commit_sha == "d" * 40

    def test_failure_does_not_advance_baseline(self, db, workflow):
        project = make_project(db)
        update = make_update(db, project, commit_sha="d" * 40)
        workflow.begin(UPDATE_ANALYSIS, update.id)

        workflow.fail_update_analysis(update, "exit 1")

        db.refresh(project)
        db.refresh(update)
        assert update.analysis_status == RunStatus.FAILED
        assert project.analysis_commit_sha == "0" * 40


class TestOnboarding:

    def test_last_section_completes_onboarding(self, db, workflow, sink):
        project = make_project(db, onboarding_step=OnboardingStep.GENERATING)
        make_section(db, project, "Getting Started", recommendations_status=RunStatus.COMPLETED)
        last = make_section(db, project, "Troubleshooting", position=1)
        workflow.begin(SECTION_RECOMMENDATIONS, last.id)

        workflow.complete_section_recommendations(last, 2)

        db.refresh(project)
        assert project.onboarding_step is None
        assert "Onboarding complete" in [e.message for e in sink.recent()]

    def test_unfinished_sections_keep_onboarding_open(self, db, workflow):
        project = make_project(db, onboarding_step=OnboardingStep.GENERATING)
        first = make_section(db, project, "Getting Started")
        make_section(db, project, "Troubleshooting", position=1)
        workflow.begin(SECTION_RECOMMENDATIONS, first.id)

        workflow.complete_section_recommendations(first, 1)

        db.refresh(project)
        assert project.onboarding_step == OnboardingStep.GENERATING

    def test_all_sections_failure_still_completes_onboarding(self, db, workflow):
        project = make_project(db, onboarding_step=OnboardingStep.GENERATING)
        sections = [make_section(db, project, "Getting Started"), make_section(db, project, "FAQ", position=1)]
        claimed = workflow.begin_all_sections(sections)

        workflow.resolve_all_sections(project.id, [s.id for s in claimed], RunStatus.FAILED, "boom")

        db.refresh(project)
        assert project.onboarding_step is None
        for section in sections:
            db.refresh(section)
            assert section.recommendations_status == RunStatus.FAILED

    def test_begin_all_sections_skips_running(self, db, workflow):
        project = make_project(db)
        busy = make_section(db, project, "Getting Started", recommendations_status=RunStatus.RUNNING)
        idle = make_section(db, project, "FAQ", position=1)
        claimed = workflow.begin_all_sections([busy, idle])
        assert [s.id for s in claimed] == [idle.id]

    def test_unknown_step_rejected(self, db, workflow):
        project = make_project(db)
        with pytest.raises(ValidationError):
            workflow.advance_onboarding(project, "celebrate")


class TestStaleRecovery:
    """Entities left running past timeout plus grace are failed with fallback content."""

    def test_old_running_entities_are_failed(self, db, workflow):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.RUNNING,
                               generation_started_at=_long_ago())
        update = make_update(db, project, analysis_status=RunStatus.RUNNING, analysis_started_at=_long_ago())
        check = make_check(db, project, status=RunStatus.RUNNING, started_at=_long_ago())
        fresh = make_article(db, project, generation_status=RunStatus.RUNNING,
                             generation_started_at=datetime.now(timezone.utc))

        assert workflow.recover_stale() == 3

        for entity in (article, update, check, fresh):
            db.refresh(entity)
        assert article.generation_status == RunStatus.FAILED
        assert "_Article generation failed. Please try again._" in article.content
        assert update.analysis_status == RunStatus.FAILED
        assert "- Commit: aaaaaaa" in update.content
        assert check.status == RunStatus.FAILED
        assert check.results == {"error": "The job stopped before finishing"}
        assert fresh.generation_status == RunStatus.RUNNING

    def test_nothing_to_recover(self, db, workflow):
        make_project(db)
        assert workflow.recover_stale() == 0


class TestReviewAndSuggestions:

    def test_review_completed_article(self, db, workflow):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.COMPLETED)
        workflow.set_review_status(article, ReviewStatus.APPROVED)
        assert article.review_status == ReviewStatus.APPROVED

    def test_review_requires_completed_generation(self, db, workflow):
        project = make_project(db)
        article = make_article(db, project)
        with pytest.raises(ValidationError):
            workflow.set_review_status(article, ReviewStatus.APPROVED)

    def test_review_rejects_unknown_value(self, db, workflow):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.COMPLETED)
        with pytest.raises(ValidationError):
            workflow.set_review_status(article, "maybe")

    def _suggestion(self, db, check, article, suggestion_type):
        suggestion = ArticleUpdateSuggestion(
            check_id=check.id,
            article_id=article.id if article else None,
            suggestion_type=suggestion_type,
            reason="The export button moved",
            suggested_changes={"update_steps": [2]},
            affected_files=["web/export.tsx"],
        )
        db.add(suggestion)
        db.commit()
        return suggestion

    def test_accepting_update_needed_writes_guidance(self, db, workflow):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.COMPLETED)
        check = make_check(db, project, status=RunStatus.COMPLETED)
        suggestion = self._suggestion(db, check, article, SuggestionType.UPDATE_NEEDED)

        workflow.accept_suggestion(suggestion)

        db.refresh(article)
        assert suggestion.status == SuggestionStatus.ACCEPTED
        assert article.regeneration_guidance.startswith("The export button moved")
        assert "Steps that need updating: 2" in article.regeneration_guidance
        assert "Affected files: web/export.tsx" in article.regeneration_guidance

    def test_dismiss(self, db, workflow):
        project = make_project(db)
        check = make_check(db, project, status=RunStatus.COMPLETED)
        suggestion = self._suggestion(db, check, None, SuggestionType.NEW_ARTICLE)
        workflow.dismiss_suggestion(suggestion)
        assert suggestion.status == SuggestionStatus.DISMISSED


class TestUpdateCheck:

    def test_completion_stores_summary(self, db, workflow):
        project = make_project(db)
        check = make_check(db, project)
        workflow.begin(UPDATE_CHECK, check.id)
        db.add(ArticleUpdateSuggestion(check_id=check.id, suggestion_type=SuggestionType.NEW_ARTICLE,
                                       priority="critical"))

        workflow.complete_update_check(check)

        db.refresh(check)
        assert check.status == RunStatus.COMPLETED
        assert check.results["total_suggestions"] == 1
        assert check.results["critical"] == 1
        assert check.completed_at is not None
