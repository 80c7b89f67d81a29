"""
GitHub REST API client for PRMonitor.

Reads pull request status and asks GitHub to update a PR branch with its base.
The token is passed in explicitly; the engine stores it, not the environment.

Supports:
- Retry on transport errors
- Rate limit detection
- GitHub Enterprise via a configurable API base
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any

import requests

from . import __version__


logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
MAX_RETRIES = 3
RETRY_DELAY = 1.0
DEFAULT_TIMEOUT = 30.0

PR_URL_PATTERN = re.compile(
    r"^(?:[a-zA-Z][a-zA-Z0-9+.-]*://)?"
    r"(?P<host>[^/\s]+)/(?P<owner>[^/\s]+)/(?P<repo>[^/\s]+)/pull/(?P<number>\d+)"
    r"(?:[/?#]\S*)?$"
)


def parse_pr_url(url: str) -> tuple[str, str, int] | None:
    """
    Parse a pull request URL of the form ``<host>/<owner>/<repo>/pull/<number>``.

    Returns:
        (owner, repo, number) or None if the URL does not match
    """
    match = PR_URL_PATTERN.match(url.strip())
    if not match:
        return None
    number = int(match.group("number"))
    if number <= 0:
        return None
    return match.group("owner"), match.group("repo"), number


@dataclass
class PullStatus:
    """Parsed GitHub PR status."""
    owner: str
    repo: str
    number: int
    state: str
    title: str
    merged: bool
    merged_at: str | None
    mergeable_state: str | None
    closed_at: str | None
    head_sha: str | None
    html_url: str


class GitHubAPIError(Exception):
    """Error from GitHub API."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(GitHubAPIError):
    """Rate limit exceeded."""
    def __init__(self, reset_time: int | None = None):
        super().__init__("GitHub API rate limit exceeded", 403)
        self.reset_time = reset_time


class GitHubClient:
    """GitHub REST API client with retry and rate limit handling."""

    def __init__(
        self,
        token: str | None = None,
        api_base: str = GITHUB_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

        if self.token:
            self.session.headers["Authorization"] = f"token {self.token}"

        self.session.headers["Accept"] = "application/vnd.github+json"
        self.session.headers["User-Agent"] = f"prmonitor/{__version__}"

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """Make an API request with retry and rate limit handling."""
        url = f"{self.api_base}{endpoint}"
        kwargs.setdefault("timeout", self.timeout)

        for attempt in range(MAX_RETRIES):
            try:
                response = self.session.request(method, url, params=params, **kwargs)

                if response.status_code in (403, 429):
                    remaining = response.headers.get("X-RateLimit-Remaining")
                    if remaining == "0":
                        reset_time = int(response.headers.get("X-RateLimit-Reset", 0))
                        raise RateLimitError(reset_time)

                if response.status_code >= 400:
                    raise GitHubAPIError(
                        f"GitHub API error: {response.status_code} - {_error_message(response)}",
                        response.status_code
                    )

                return response

            except requests.RequestException as e:
                if attempt < MAX_RETRIES - 1:
                    logger.debug("Retrying %s %s after transport error: %s", method, endpoint, e)
                    time.sleep(RETRY_DELAY * (attempt + 1))
                    continue
                raise GitHubAPIError(f"Request failed: {e}")

        raise GitHubAPIError("Max retries exceeded")

    def get_pull(self, owner: str, repo: str, number: int) -> PullStatus:
        """Get the current status of a pull request."""
        endpoint = f"/repos/{owner}/{repo}/pulls/{number}"
        response = self._request("GET", endpoint)
        try:
            data = response.json()
        except ValueError as e:
            raise GitHubAPIError(f"Invalid response for {owner}/{repo}#{number}: {e}", response.status_code)
        if not isinstance(data, dict):
            raise GitHubAPIError(f"Unexpected payload for {owner}/{repo}#{number}", response.status_code)
        return self._parse_pull(owner, repo, data)

    def update_branch(
        self,
        owner: str,
        repo: str,
        number: int,
        expected_head_sha: str | None = None,
    ) -> str:
        """
        Merge the base branch into the PR branch.

        GitHub answers 202 Accepted and performs the update asynchronously.

        Returns:
            The message GitHub returned for the request
        """
        endpoint = f"/repos/{owner}/{repo}/pulls/{number}/update-branch"
        payload: dict[str, Any] = {}
        if expected_head_sha:
            payload["expected_head_sha"] = expected_head_sha
        response = self._request("PUT", endpoint, json=payload)
        try:
            data = response.json()
        except ValueError:
            return ""
        return str(data.get("message", "")) if isinstance(data, dict) else ""

    def _parse_pull(self, owner: str, repo: str, data: dict[str, Any]) -> PullStatus:
        """Parse raw PR data into a PullStatus."""
        head = data.get("head") or {}
        merged_at = data.get("merged_at")

        return PullStatus(
            owner=owner,
            repo=repo,
            number=int(data.get("number", 0)),
            state=data.get("state") or "",
            title=data.get("title") or "",
            merged=bool(data.get("merged")) or merged_at is not None,
            merged_at=merged_at,
            mergeable_state=data.get("mergeable_state"),
            closed_at=data.get("closed_at"),
            head_sha=head.get("sha"),
            html_url=data.get("html_url") or "",
        )

    def check_rate_limit(self) -> dict[str, Any]:
        """Check current rate limit status."""
        response = self._request("GET", "/rate_limit")
        return response.json()


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text
