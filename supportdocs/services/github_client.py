"""REST client for the source-repository host, plus repository token issuance.

Deep module: callers ask for a diff or a list of merged pull requests and
get data back. Retries, auth headers and token caching are handled here.
Anything that still fails surfaces as ``UpstreamAPIError``.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from ..core.config import Settings
from ..exceptions import UpstreamAPIError

logger = logging.getLogger(__name__)

DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"
JSON_MEDIA_TYPE = "application/vnd.github+json"


class GitHubClient:
    """Client for the handful of hosting API calls the pipeline needs.

    Args:
        settings: Supplies ``github_api_url``, ``github_timeout`` and
                  ``github_max_retries``.
        session: Optional ``requests.Session`` (tests pass a mock).
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.api_url = settings.github_api_url.rstrip("/")
        self.timeout = settings.github_timeout
        self.max_retries = settings.github_max_retries
        self.app_jwt = settings.github_app_jwt
        self.session = session or requests.Session()
        self._sleep = sleep

    def _headers(self, token: Optional[str], accept: str) -> Dict[str, str]:
        headers = {"Accept": accept, "X-GitHub-Api-Version": "2022-11-28"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, token: Optional[str], accept: str = JSON_MEDIA_TYPE,
                 params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """Send one request with retry.

        5xx, 429 and network errors are retried with exponential backoff;
        other 4xx responses fail immediately.
        """
        endpoint = f"{self.api_url}{path}"
        for attempt in range(self.max_retries):
            try:
                logger.debug(f"{method} {endpoint} (attempt {attempt + 1}/{self.max_retries})")
                response = self.session.request(
                    method,
                    endpoint,
                    headers=self._headers(token, accept),
                    params=params,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response

            except requests.exceptions.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else 0
                logger.warning(f"HTTP {status} from {method} {path}")

                # Don't retry client errors (except 429 rate limit)
                if 400 <= status < 500 and status != 429:
                    raise UpstreamAPIError(f"{method} {path} failed with {status}", upstream_status=status)

                if attempt < self.max_retries - 1:
                    wait = (2 ** attempt) * (5 if status == 429 else 1)
                    logger.info(f"Retrying in {wait}s")
                    self._sleep(wait)
                else:
                    raise UpstreamAPIError(
                        f"{method} {path} failed after {self.max_retries} attempts (HTTP {status})",
                        upstream_status=status,
                    )

            except requests.exceptions.RequestException as exc:
                logger.warning(f"Request failed: {type(exc).__name__}: {exc}")
                if attempt < self.max_retries - 1:
                    wait = 2 ** attempt
                    logger.info(f"Retrying in {wait}s")
                    self._sleep(wait)
                else:
                    raise UpstreamAPIError(f"{method} {path} failed after {self.max_retries} attempts: {exc}")

        raise UpstreamAPIError(f"{method} {path} was not attempted")

    # ----- read operations -------------------------------------------------

    def get_commit(self, repo: str, sha: str, token: Optional[str]) -> Dict[str, Any]:
        """Commit metadata: sha, title (first message line) and full message."""
        data = self._request("GET", f"/repos/{repo}/commits/{sha}", token).json()
        message = (data.get("commit") or {}).get("message") or ""
        return {
            "sha": data.get("sha") or sha,
            "title": message.split("\n", 1)[0],
            "message": message,
            "html_url": data.get("html_url"),
        }

    def get_latest_commit_sha(self, repo: str, token: Optional[str]) -> Optional[str]:
        commits = self._request("GET", f"/repos/{repo}/commits", token, params={"per_page": 1}).json()
        return commits[0]["sha"] if commits else None

    def get_commit_diff(self, repo: str, sha: str, token: Optional[str]) -> str:
        return self._request("GET", f"/repos/{repo}/commits/{sha}", token, accept=DIFF_MEDIA_TYPE).text

    def get_pull_request(self, repo: str, number: int, token: Optional[str]) -> Dict[str, Any]:
        data = self._request("GET", f"/repos/{repo}/pulls/{number}", token).json()
        return {
            "number": data.get("number", number),
            "title": data.get("title"),
            "body": data.get("body"),
            "merge_commit_sha": data.get("merge_commit_sha"),
            "merged_at": data.get("merged_at"),
            "html_url": data.get("html_url"),
        }

    def get_pull_request_diff(self, repo: str, number: int, token: Optional[str]) -> str:
        return self._request("GET", f"/repos/{repo}/pulls/{number}", token, accept=DIFF_MEDIA_TYPE).text

    def list_merged_pull_requests(self, repo: str, token: Optional[str],
                                  since: Optional[datetime] = None, limit: int = 30) -> List[Dict[str, Any]]:
        """Recently merged pull requests, newest first, optionally merged after ``since``."""
        pulls = self._request(
            "GET",
            f"/repos/{repo}/pulls",
            token,
            params={"state": "closed", "sort": "updated", "direction": "desc", "per_page": limit},
        ).json()

        merged = []
        for pr in pulls:
            merged_at = _parse_timestamp(pr.get("merged_at"))
            if merged_at is None:
                continue
            if since is not None and merged_at <= _as_utc(since):
                continue
            merged.append({
                "number": pr["number"],
                "title": pr.get("title"),
                "merge_commit_sha": pr.get("merge_commit_sha"),
                "merged_at": merged_at,
            })
        merged.sort(key=lambda p: p["merged_at"], reverse=True)
        return merged

    # ----- token issuance -------------------------------------------------

    def create_installation_token(self, installation_id: str) -> "IssuedToken":
        """Exchange the app credential for a short-lived installation token."""
        if not self.app_jwt:
            raise UpstreamAPIError("GITHUB_APP_JWT is not configured; cannot issue installation tokens")
        data = self._request("POST", f"/app/installations/{installation_id}/access_tokens", self.app_jwt).json()
        return IssuedToken(token=data["token"], expires_at=_parse_timestamp(data.get("expires_at"))
                           or datetime.now(timezone.utc) + timedelta(hours=1))


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


class TokenProvider:
    """Repository access tokens, cached per installation.

    A cached token is re-issued once it is within ``expiry_buffer`` of
    expiring. Repositories without an installation fall back to the static
    ``GITHUB_TOKEN``.
    """

    def __init__(self, settings: Settings, issuer: Optional[Callable[[str], IssuedToken]] = None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.fallback_token = settings.github_token
        self.expiry_buffer = timedelta(seconds=settings.token_expiry_buffer_seconds)
        self.issuer = issuer
        self._clock = clock
        self._cache: Dict[str, IssuedToken] = {}
        self._lock = threading.Lock()

    def token_for(self, installation_id: Optional[str]) -> Optional[str]:
        if not installation_id or self.issuer is None:
            return self.fallback_token or None

        with self._lock:
            cached = self._cache.get(installation_id)
            if cached and cached.expires_at > self._clock() + self.expiry_buffer:
                return cached.token

            issued = self.issuer(installation_id)
            self._cache[installation_id] = issued
            logger.info(f"Issued repository token for installation {installation_id}")
            return issued.token

    def repository_secrets(self, repositories: List[Dict[str, Any]]) -> Dict[str, str]:
        """Sandbox secrets for a project's repositories.

        ``GITHUB_REPOS_JSON`` pairs every repository with its token;
        ``GITHUB_TOKEN`` carries the primary repository's token for entry
        points that only look at one repository.
        """
        entries = []
        for repo in repositories:
            token = self.token_for(repo.get("installation_id"))
            if not token:
                logger.warning(f"No access token available for {repo.get('repo')}")
                continue
            entries.append({"repo": repo["repo"], "directory": repo.get("directory"), "token": token})

        if not entries:
            return {}
        return {
            "GITHUB_TOKEN": entries[0]["token"],
            "GITHUB_REPOS_JSON": json.dumps(entries),
        }
