"""Tests for OutputParser, the boundary between untyped sandbox files and typed results.

Every parse returns ParseSuccess or ParseFailure; nothing here should raise.
"""

import json

from supportdocs.pipeline import OutputParser, ParseFailure, ParseSuccess, strip_fences


parser = OutputParser()


class TestStripFences:

    def test_removes_json_fence(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_removes_bare_fence(self):
        assert strip_fences('```\nhello\n```') == "hello"

    def test_is_idempotent(self):
        once = strip_fences('```json\n{"a": 1}\n```')
        assert strip_fences(once) == once

    def test_unfenced_text_only_trimmed(self):
        assert strip_fences('  {"a": 1}\n') == '{"a": 1}'


class TestRecommendations:
    """recommendations.json must be an object with an ``articles`` key."""

    def test_fenced_output_parses(self):
        raw = '```json\n{"articles":[{"title":"Setup Guide","description":"d","justification":"j"}]}\n```'
        result = parser.parse_recommendations({"recommendations.json": raw})
        assert isinstance(result, ParseSuccess)
        assert [item.title for item in result.value.items] == ["Setup Guide"]

    def test_missing_file_is_failure(self):
        result = parser.parse_recommendations({})
        assert isinstance(result, ParseFailure)
        assert result.reason == "No output generated"

    def test_list_instead_of_object_is_failure(self):
        result = parser.parse_recommendations({"recommendations.json": '[{"title": "x"}]'})
        assert not result.ok
        assert "articles" in result.reason
        assert result.excerpt.startswith("[")

    def test_blank_titles_are_skipped(self):
        raw = json.dumps({"articles": [{"title": "  "}, {"title": "Billing FAQ"}, "not an object"]})
        result = parser.parse_recommendations({"recommendations.json": raw})
        assert [item.title for item in result.value.items] == ["Billing FAQ"]

    def test_excerpt_is_bounded(self):
        result = parser.parse_recommendations({"recommendations.json": "x" * 5000})
        assert not result.ok
        assert len(result.excerpt) == 500


class TestGroupedRecommendations:

    def test_maps_slugs_to_items(self):
        raw = json.dumps({
            "getting-started": [{"title": "Install"}],
            "troubleshooting": [],
            "ignored": "not a list",
        })
        result = parser.parse_grouped_recommendations({"recommendations.json": raw})
        assert result.ok
        assert set(result.value.by_section) == {"getting-started", "troubleshooting"}
        assert result.value.total == 1


class TestChangeAnalysis:

    def test_content_is_required(self):
        result = parser.parse_change_analysis({"title.txt": "Something"})
        assert not result.ok

    def test_missing_articles_file_means_no_opinion(self):
        result = parser.parse_change_analysis({"content.md": "## Changes"})
        assert result.ok
        assert result.value.recommendations is None
        assert result.value.title is None

    def test_malformed_articles_file_means_no_opinion(self):
        result = parser.parse_change_analysis({"content.md": "## Changes", "articles.json": "{oops"})
        assert result.value.recommendations is None

    def test_empty_articles_list_is_an_answer(self):
        result = parser.parse_change_analysis({
            "content.md": "## Changes",
            "title.txt": "  Faster exports \n",
            "articles.json": '{"articles": []}',
        })
        assert result.value.recommendations == []
        assert result.value.title == "Faster exports"


class TestArticle:

    def test_structured_article(self):
        raw = json.dumps({"introduction": "Intro", "steps": [{"title": "Install", "content": "Run it"}]})
        result = parser.parse_article({"article.json": raw})
        assert result.ok
        assert result.value.structured.steps[0].title == "Install"
        assert result.value.raw_structured["introduction"] == "Intro"
        assert result.value.content is None

    def test_json_without_structure_keeps_raw_text(self):
        raw = '{"body": "just text"}'
        result = parser.parse_article({"article.json": raw})
        assert result.value.structured is None
        assert result.value.content == raw

    def test_invalid_json_keeps_raw_text(self):
        result = parser.parse_article({"article.json": "# Plain markdown article"})
        assert result.ok
        assert result.value.content == "# Plain markdown article"

    def test_missing_file_is_failure(self):
        assert not parser.parse_article({}).ok


class TestSuggestions:

    def test_accepts_wrapped_list_and_type_alias(self):
        raw = json.dumps({"suggestions": [
            {"type": "update_needed", "article_id": "a1", "priority": "High", "reason": "Step 2 changed"},
            {"suggestion_type": "new_article", "priority": "urgent"},
        ]})
        result = parser.parse_suggestions({"suggestions.json": raw})
        assert result.ok
        first, second = result.value.suggestions
        assert first.suggestion_type == "update_needed"
        assert first.priority == "high"
        assert second.priority == "medium"
        assert second.article_id is None

    def test_unknown_types_are_skipped(self):
        raw = json.dumps([{"type": "delete_article"}, {"type": "new_article"}, 42])
        result = parser.parse_suggestions({"suggestions.json": raw})
        assert len(result.value.suggestions) == 1
        assert result.value.skipped == 2

    def test_object_without_list_is_failure(self):
        result = parser.parse_suggestions({"suggestions.json": '{"items": []}'})
        assert not result.ok

    def test_lone_affected_file_becomes_a_list(self):
        raw = json.dumps([
            {"type": "new_article", "reason": "Reports page", "affected_files": "app/models.py"},
            {"type": "new_article", "reason": "Exports", "affected_files": {"path": "x"}},
        ])
        result = parser.parse_suggestions({"suggestions.json": raw})
        first, second = result.value.suggestions
        assert first.affected_files == ["app/models.py"]
        assert second.affected_files is None
        assert result.value.skipped == 0


class TestSections:

    def test_nameless_entries_are_dropped(self):
        raw = json.dumps({"sections": [{"name": "Billing", "icon": "card"}, {"name": ""}, {"slug": "x"}]})
        result = parser.parse_sections({"sections.json": raw})
        assert [s.name for s in result.value.sections] == ["Billing"]

    def test_mistyped_entry_is_dropped_alone(self):
        raw = json.dumps([{"name": "Billing", "icon": 3}, {"name": "Reports"}])
        result = parser.parse_sections({"sections.json": raw})
        assert result.ok
        assert [s.name for s in result.value.sections] == ["Reports"]


class TestCodebase:

    def test_summary_is_required(self):
        assert not parser.parse_codebase({"metadata.json": "{}"}).ok

    def test_collects_extras_into_metadata(self):
        files = {
            "summary.md": "A billing service.",
            "metadata.json": '```json\n{"tech_stack": ["go"]}\n```',
            "target_users.json": '["finance teams"]',
            "style_context.json": '{"primary_color": "#123456"}',
            "repository_relationships.json": 'The API calls the worker.\n```json\n{"links": [["api", "worker"]]}\n```',
            "contextual_questions.json": '{"questions": ["Who approves invoices?"]}',
            "commit_sha.txt": ("e" * 40) + "\n",
            "overview.txt": "Invoices and payments.",
        }
        result = parser.parse_codebase(files)
        assert result.ok
        analysis = result.value
        assert analysis.metadata["tech_stack"] == ["go"]
        assert analysis.metadata["target_users"] == ["finance teams"]
        assert analysis.metadata["style_context"] == {"primary_color": "#123456"}
        assert analysis.metadata["repository_relationships"] == {"links": [["api", "worker"]]}
        assert analysis.contextual_questions == ["Who approves invoices?"]
        assert analysis.commit_sha == "e" * 40
        assert analysis.overview == "Invoices and payments."

    def test_malformed_optional_files_are_ignored(self):
        result = parser.parse_codebase({"summary.md": "Summary", "metadata.json": "{broken"})
        assert result.ok
        assert result.value.metadata == {}
        assert result.value.commit_sha is None


class TestCss:

    def test_css_file(self):
        result = parser.parse_css({"compiled_css.txt": "body { color: red; }\n"})
        assert result.value.css == "body { color: red; }"

    def test_missing_css_is_failure(self):
        assert not parser.parse_css({"compiled_css.txt": "   "}).ok
