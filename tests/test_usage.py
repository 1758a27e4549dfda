"""Tests for usage parsing, recording and aggregation."""

import pytest

from supportdocs.core.logging_config import redact
from supportdocs.models import UsageRecord
from supportdocs.pipeline.usage_tracker import ERROR_MESSAGE_LIMIT, UsageTracker, merge_usage, parse_usage
from supportdocs.repositories import UsageRepository
from tests.conftest import make_project, usage_json


class TestParseUsage:

    def test_reads_counters(self):
        parsed = parse_usage(usage_json(input_tokens=120, output_tokens=30, cost=0.02))
        assert parsed["input_tokens"] == 120
        assert parsed["output_tokens"] == 30
        assert parsed["cost_usd"] == 0.02
        assert parsed["session_id"] == "sess-1"
        assert parsed["num_turns"] == 3

    def test_missing_fields_are_zero(self):
        parsed = parse_usage("{}")
        assert parsed["input_tokens"] == 0
        assert parsed["cost_usd"] is None

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            parse_usage("[1, 2]")

    def test_usage_block_that_is_not_an_object(self):
        parsed = parse_usage('{"usage": "n/a", "total_cost_usd": 0.1}')
        assert (parsed["input_tokens"], parsed["output_tokens"]) == (0, 0)
        assert parsed["cost_usd"] == 0.1
        assert parsed["service_tier"] is None

    def test_merge_sums_counters_and_keeps_first_identity(self):
        main = parse_usage(usage_json(input_tokens=100, output_tokens=10, cost=0.1))
        style = dict(parse_usage(usage_json(input_tokens=50, output_tokens=5, cost=0.05)), session_id="sess-2")
        merged = merge_usage([main, style])
        assert (merged["input_tokens"], merged["output_tokens"]) == (150, 15)
        assert merged["cost_usd"] == pytest.approx(0.15)
        assert merged["duration_ms"] == 2400
        assert merged["session_id"] == "sess-1"


class TestUsageTracker:
    """One record per attempt, whatever happened."""

    def test_zeroed_record_when_sandbox_never_ran(self, db):
        project = make_project(db)
        record = UsageTracker(db).record("generate_article", project.id, None, False, error_message="no credentials")
        assert (record.input_tokens, record.output_tokens, record.cost_usd) == (0, 0, None)
        assert record.success is False

    def test_unreadable_usage_file_is_ignored(self, db):
        project = make_project(db)
        record = UsageTracker(db).record("generate_css", project.id, {"usage.json": "not json"}, True)
        assert record.input_tokens == 0
        assert record.success is True

    def test_error_message_is_redacted_and_bounded(self, db):
        project = make_project(db)
        secret = "sk-ant-" + "x" * 40
        message = f"auth failed with {secret} " + "e" * 5000

        record = UsageTracker(db).record("analyze_commit", project.id, {}, False, error_message=message)

        assert secret not in record.error_message
        assert "***REDACTED***" in record.error_message
        assert len(record.error_message) == ERROR_MESSAGE_LIMIT

    def test_metadata_is_stored(self, db):
        project = make_project(db)
        UsageTracker(db).record("generate_article", project.id, {"usage.json": usage_json()}, True,
                                metadata={"article_id": "a1"})
        stored = db.query(UsageRecord).one()
        assert stored.attempt_metadata == {"article_id": "a1"}
        assert stored.total_tokens == 150


class TestRedaction:

    def test_token_patterns(self):
        text = redact("token=abcdefgh12345 and Bearer abcdefghijklmnopqrstuvwxyz ghp_" + "a" * 36)
        assert "abcdefgh12345" not in text
        assert "abcdefghijklmnopqrstuvwxyz" not in text
        assert "ghp_" not in text
        assert text.startswith("token=***REDACTED***")


class TestTotals:

    def test_grouped_by_job_type(self, db):
        project = make_project(db)
        other = make_project(db, name="Other", slug="other")
        tracker = UsageTracker(db)
        tracker.record("generate_article", project.id, {"usage.json": usage_json(100, 50, 0.01)}, True)
        tracker.record("generate_article", project.id, {"usage.json": usage_json(200, 10, 0.02)}, False)
        tracker.record("analyze_commit", project.id, {"usage.json": usage_json(10, 5, 0.005)}, True)
        tracker.record("analyze_commit", other.id, {"usage.json": usage_json(999, 999, 9.0)}, True)

        totals = UsageRepository(db).totals(project.id)

        assert totals["invocations"] == 3
        assert totals["input_tokens"] == 310
        assert totals["cost_usd"] == pytest.approx(0.035)
        assert totals["by_job_type"]["generate_article"]["invocations"] == 2
        assert totals["by_job_type"]["analyze_commit"]["output_tokens"] == 5

    def test_all_projects(self, db):
        project = make_project(db)
        UsageTracker(db).record("generate_css", project.id, None, False)
        assert UsageRepository(db).totals()["invocations"] == 1
