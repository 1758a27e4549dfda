"""HTTP-level tests for the API: triggers, reads, user actions and error bodies."""

from supportdocs import schemas
from supportdocs.models import ArticleUpdateSuggestion, GenerationJob
from supportdocs.models.statuses import RunStatus, SuggestionType
from supportdocs.pipeline.usage_tracker import UsageTracker
from tests.conftest import (
    make_article,
    make_check,
    make_project,
    make_recommendation,
    make_section,
    usage_json,
)


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "supportdocs API"

    def test_health_reports_queue_depth(self, client, db):
        project = make_project(db)
        client.post(f"/api/projects/{project.id}/css")

        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["db"] == "ok"
        assert body["queued_jobs"] == 1

    def test_request_id_round_trip(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Response-Time"].endswith("ms")


class TestProjects:

    def test_create_starts_onboarding(self, client):
        response = client.post("/api/projects", json={
            "name": "Acme Billing",
            "github_repo": "acme/billing/",
            "repositories": [{"repo": "acme/billing-worker", "directory": "worker"}],
            "update_strategy": "weekly",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["slug"] == "acme-billing"
        assert body["github_repo"] == "acme/billing"
        assert body["onboarding_step"] == "basics"
        assert body["repositories"][0]["repo"] == "acme/billing-worker"

    def test_bad_repository_name(self, client):
        response = client.post("/api/projects", json={"name": "Acme", "github_repo": "not-a-repo"})
        assert response.status_code == 422

    def test_unknown_project(self, client):
        response = client.get("/api/projects/missing")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "PROJECT_NOT_FOUND"
        assert set(body) == {"error", "message", "details"}

    def test_onboarding_completion_emits_event(self, client, db):
        project = make_project(db, onboarding_step="analyze")

        response = client.put(f"/api/projects/{project.id}/onboarding", json={"step": "sections"})
        assert response.json()["onboarding_step"] == "sections"

        response = client.put(f"/api/projects/{project.id}/onboarding", json={"step": None})
        assert response.json()["onboarding_step"] is None

        events = client.get("/api/events", params={"project_id": project.id}).json()
        assert events[0]["message"] == "Onboarding complete"
        assert events[0]["entity_type"] == "project"

    def test_unknown_onboarding_step(self, client, db):
        project = make_project(db)
        response = client.put(f"/api/projects/{project.id}/onboarding", json={"step": "party"})
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestTriggers:

    def test_analyze_returns_job_and_lists_it(self, client, db):
        project = make_project(db)

        response = client.post(f"/api/projects/{project.id}/analyze")
        assert response.status_code == 202
        job = response.json()
        assert (job["job_type"], job["status"], job["entity_id"]) == ("analyze_codebase", "queued", project.id)

        assert client.get(f"/api/jobs/{job['id']}").json()["id"] == job["id"]
        listed = client.get("/api/jobs", params={"project_id": project.id}).json()
        assert [j["id"] for j in listed] == [job["id"]]

    def test_running_target_is_a_conflict(self, client, db):
        project = make_project(db, analysis_status=RunStatus.RUNNING)
        response = client.post(f"/api/projects/{project.id}/analyze")
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "CONFLICT"
        assert body["details"]["entity_id"] == project.id

    def test_unknown_job(self, client):
        response = client.get("/api/jobs/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "JOB_NOT_FOUND"

    def test_commit_trigger(self, client, db):
        project = make_project(db)
        response = client.post(f"/api/projects/{project.id}/commits",
                               json={"commit_sha": "d" * 40, "title": "Fix login"})
        assert response.status_code == 202
        assert response.json()["payload"]["title"] == "Fix login"

        updates = client.get(f"/api/projects/{project.id}/updates").json()
        assert [(u["commit_sha"], u["analysis_status"]) for u in updates] == [("d" * 40, "pending")]

    def test_commit_sha_too_short(self, client, db):
        project = make_project(db)
        response = client.post(f"/api/projects/{project.id}/commits", json={"commit_sha": "abc"})
        assert response.status_code == 422

    def test_article_trigger(self, client, db):
        project = make_project(db)
        recommendation = make_recommendation(db, project)

        response = client.post(f"/api/recommendations/{recommendation.id}/article")

        assert response.status_code == 202
        article = response.json()
        assert article["generation_status"] == "pending"
        assert db.query(GenerationJob).filter(GenerationJob.entity_id == article["id"]).count() == 1

    def test_template_sections(self, client, db):
        project = make_project(db)
        response = client.post(f"/api/projects/{project.id}/template-sections")
        assert response.status_code == 201
        assert [s["slug"] for s in response.json()] == [
            "getting-started", "daily-tasks", "advanced-usage", "troubleshooting",
        ]

    def test_all_recommendations_without_sections(self, client, db):
        project = make_project(db)
        response = client.post(f"/api/projects/{project.id}/sections/recommendations")
        assert response.status_code == 400

    def test_section_recommendations(self, client, db):
        project = make_project(db)
        section = make_section(db, project)
        response = client.post(f"/api/sections/{section.id}/recommendations")
        assert response.status_code == 202
        assert response.json()["job_type"] == "generate_section_recommendations"

    def test_update_check_with_explicit_commit(self, client, db):
        project = make_project(db)
        response = client.post(f"/api/projects/{project.id}/update-checks", json={"target_commit_sha": "c" * 40})
        assert response.status_code == 202
        body = response.json()
        assert body["target_commit_sha"] == "c" * 40
        assert body["base_commit_sha"] == "0" * 40
        assert body["status"] == "pending"


class TestUserActions:

    def test_review_requires_completed_article(self, client, db):
        project = make_project(db)
        article = make_article(db, project)
        response = client.put(f"/api/articles/{article.id}/review", json={"review_status": "approved"})
        assert response.status_code == 400

    def test_review_completed_article(self, client, db):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.COMPLETED)
        response = client.put(f"/api/articles/{article.id}/review", json={"review_status": "approved"})
        assert response.status_code == 200
        assert response.json()["review_status"] == "approved"

    def test_accept_suggestion_and_read_check(self, client, db):
        project = make_project(db)
        article = make_article(db, project, generation_status=RunStatus.COMPLETED)
        check = make_check(db, project, status=RunStatus.COMPLETED)
        suggestion = ArticleUpdateSuggestion(check_id=check.id, article_id=article.id,
                                             suggestion_type=SuggestionType.UPDATE_NEEDED,
                                             reason="Settings page was redesigned")
        db.add(suggestion)
        db.commit()

        response = client.post(f"/api/suggestions/{suggestion.id}/accept")
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

        article_body = client.get(f"/api/articles/{article.id}").json()
        assert article_body["regeneration_guidance"].startswith("Settings page was redesigned")

        check_body = client.get(f"/api/update-checks/{check.id}").json()
        assert [s["id"] for s in check_body["suggestions"]] == [suggestion.id]


class TestUsage:

    def test_totals_for_project(self, client, db):
        project = make_project(db)
        tracker = UsageTracker(db)
        tracker.record("generate_article", project.id, {"usage.json": usage_json(100, 50, 0.01)}, True)
        tracker.record("generate_article", project.id, None, False, error_message="timed out")

        totals = client.get("/api/usage", params={"project_id": project.id}).json()
        assert totals["invocations"] == 2
        assert totals["input_tokens"] == 100
        assert totals["by_job_type"]["generate_article"]["invocations"] == 2

        records = client.get(f"/api/usage/projects/{project.id}").json()
        assert len(records) == 2
        assert {r["success"] for r in records} == {True, False}


class TestSchemas:

    def test_response_schemas_read_orm_rows(self, db):
        project = make_project(db, model_id="claude-sonnet")
        body = schemas.ProjectResponse.model_validate(project)
        assert (body.id, body.model_id) == (project.id, "claude-sonnet")

    def test_no_class_based_config(self):
        for name in schemas.__all__:
            model = getattr(schemas, name)
            assert "Config" not in vars(model), name
