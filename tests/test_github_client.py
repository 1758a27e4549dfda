"""Tests for GitHubClient retry behaviour and TokenProvider caching."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from supportdocs.exceptions import UpstreamAPIError
from supportdocs.services.github_client import GitHubClient, IssuedToken, TokenProvider


def _response(status: int = 200, payload=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    response.text = text
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def session():
    return MagicMock()


@pytest.fixture()
def client(settings, session, sleeps) -> GitHubClient:
    return GitHubClient(settings, session=session, sleep=sleeps.append)


class TestRetries:

    def test_server_error_then_success(self, client, session, sleeps):
        session.request.side_effect = [_response(502), _response(200, text="+line\n")]

        assert client.get_commit_diff("acme/billing", "a" * 40, "tok") == "+line\n"
        assert sleeps == [1]
        assert session.request.call_count == 2

    def test_client_error_fails_immediately(self, client, session, sleeps):
        session.request.return_value = _response(404)

        with pytest.raises(UpstreamAPIError) as exc_info:
            client.get_commit_diff("acme/billing", "a" * 40, "tok")

        assert exc_info.value.upstream_status == 404
        assert session.request.call_count == 1
        assert sleeps == []

    def test_rate_limit_backs_off_longer(self, client, session, sleeps):
        session.request.side_effect = [_response(429), _response(429), _response(200, payload=[])]

        assert client.get_latest_commit_sha("acme/billing", None) is None
        assert sleeps == [5, 10]

    def test_network_errors_exhaust_retries(self, client, session, sleeps):
        session.request.side_effect = requests.exceptions.ConnectionError("connection refused")

        with pytest.raises(UpstreamAPIError) as exc_info:
            client.get_pull_request_diff("acme/billing", 7, "tok")

        assert "after 3 attempts" in exc_info.value.message
        assert sleeps == [1, 2]

    def test_persistent_server_error(self, client, session):
        session.request.return_value = _response(503)
        with pytest.raises(UpstreamAPIError) as exc_info:
            client.get_commit("acme/billing", "a" * 40, "tok")
        assert exc_info.value.upstream_status == 503
        assert session.request.call_count == 3


class TestRequests:

    def test_auth_and_diff_headers(self, client, session):
        session.request.return_value = _response(200, text="diff")

        client.get_commit_diff("acme/billing", "a" * 40, "secret-token")

        method, url = session.request.call_args.args
        headers = session.request.call_args.kwargs["headers"]
        assert method == "GET"
        assert url.endswith("/repos/acme/billing/commits/" + "a" * 40)
        assert headers["Authorization"] == "Bearer secret-token"
        assert headers["Accept"] == "application/vnd.github.v3.diff"

    def test_anonymous_request_has_no_auth_header(self, client, session):
        session.request.return_value = _response(200, payload=[{"sha": "f" * 40}])
        assert client.get_latest_commit_sha("acme/billing", None) == "f" * 40
        assert "Authorization" not in session.request.call_args.kwargs["headers"]

    def test_commit_title_is_first_message_line(self, client, session):
        session.request.return_value = _response(200, payload={
            "sha": "a" * 40, "commit": {"message": "Fix rounding\n\nUse decimal"},
        })
        commit = client.get_commit("acme/billing", "a" * 40, "tok")
        assert commit["title"] == "Fix rounding"
        assert commit["message"] == "Fix rounding\n\nUse decimal"

    def test_merged_pull_requests_filtered_and_sorted(self, client, session):
        session.request.return_value = _response(200, payload=[
            {"number": 1, "title": "Old", "merged_at": "2026-01-01T00:00:00Z"},
            {"number": 2, "title": "Closed unmerged", "merged_at": None},
            {"number": 3, "title": "Newer", "merged_at": "2026-03-01T00:00:00Z"},
            {"number": 4, "title": "Newest", "merged_at": "2026-03-05T00:00:00Z"},
        ])

        merged = client.list_merged_pull_requests(
            "acme/billing", "tok", since=datetime(2026, 2, 1, tzinfo=timezone.utc)
        )

        assert [p["number"] for p in merged] == [4, 3]
        assert session.request.call_args.kwargs["params"]["state"] == "closed"

    def test_installation_token_requires_app_credential(self, client):
        with pytest.raises(UpstreamAPIError):
            client.create_installation_token("123")


class TestTokenProvider:
    """Installation tokens are reused until they are close to expiring."""

    def _provider(self, settings, now):
        issued = []

        def issuer(installation_id):
            issued.append(installation_id)
            return IssuedToken(token=f"inst-{len(issued)}", expires_at=now[0] + timedelta(hours=1))

        provider = TokenProvider(settings, issuer=issuer, clock=lambda: now[0])
        return provider, issued

    def test_token_is_cached_until_buffer(self, settings):
        now = [datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)]
        provider, issued = self._provider(settings, now)

        assert provider.token_for("42") == "inst-1"
        now[0] += timedelta(minutes=50)
        assert provider.token_for("42") == "inst-1"
        # Within the five minute buffer of expiry.
        now[0] += timedelta(minutes=6)
        assert provider.token_for("42") == "inst-2"
        assert issued == ["42", "42"]

    def test_no_installation_uses_static_token(self, settings):
        provider = TokenProvider(settings)
        assert provider.token_for(None) == settings.github_token
        assert provider.token_for("42") == settings.github_token

    def test_no_token_at_all(self, settings):
        settings.github_token = ""
        assert TokenProvider(settings).token_for(None) is None

    def test_repository_secrets(self, settings):
        provider = TokenProvider(settings)
        secrets = provider.repository_secrets([
            {"repo": "acme/billing", "directory": "billing"},
            {"repo": "acme/web", "directory": "web"},
        ])
        assert secrets["GITHUB_TOKEN"] == settings.github_token
        entries = json.loads(secrets["GITHUB_REPOS_JSON"])
        assert [(e["repo"], e["directory"]) for e in entries] == [("acme/billing", "billing"), ("acme/web", "web")]

    def test_repository_secrets_empty_without_tokens(self, settings):
        settings.github_token = ""
        assert TokenProvider(settings).repository_secrets([{"repo": "acme/billing"}]) == {}
