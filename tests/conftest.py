from __future__ import annotations

import threading
import time

import pytest

from prmonitor.events import EventBus
from prmonitor.github import GitHubAPIError, PullStatus
from prmonitor.store import Store


def make_status(
    number: int = 42,
    owner: str = "acme",
    repo: str = "widgets",
    mergeable_state: str | None = "clean",
    merged: bool = False,
    merged_at: str | None = None,
    state: str = "open",
    title: str = "Add widget",
    closed_at: str | None = None,
) -> PullStatus:
    return PullStatus(
        owner=owner,
        repo=repo,
        number=number,
        state=state,
        title=title,
        merged=merged,
        merged_at=merged_at,
        mergeable_state=mergeable_state,
        closed_at=closed_at,
        head_sha="abc123",
        html_url=f"https://github.com/{owner}/{repo}/pull/{number}",
    )


class FakeGitHubClient:
    """Scripted stand-in for GitHubClient; safe to call from worker threads."""

    def __init__(self, statuses: dict | None = None, fetch_delay: float = 0.0):
        self.statuses: dict[tuple[str, str, int], PullStatus | Exception] = statuses or {}
        self.fetch_delay = fetch_delay
        self.update_error: Exception | None = None
        self.fetch_calls: list[tuple[str, str, int]] = []
        self.update_calls: list[tuple[str, str, int]] = []
        self._lock = threading.Lock()

    def set_status(self, status: PullStatus | Exception, owner="acme", repo="widgets", number=42):
        self.statuses[(owner, repo, number)] = status

    def get_pull(self, owner: str, repo: str, number: int) -> PullStatus:
        with self._lock:
            self.fetch_calls.append((owner, repo, number))
        if self.fetch_delay:
            time.sleep(self.fetch_delay)
        status = self.statuses.get((owner, repo, number))
        if status is None:
            raise GitHubAPIError("GitHub API error: 404 - Not Found", 404)
        if isinstance(status, Exception):
            raise status
        return status

    def update_branch(self, owner: str, repo: str, number: int, expected_head_sha=None) -> str:
        with self._lock:
            self.update_calls.append((owner, repo, number))
        if self.update_error is not None:
            raise self.update_error
        return "Updating pull request branch."

    def check_rate_limit(self) -> dict:
        return {"resources": {"core": {"limit": 5000, "remaining": 4321}}}


class RecordingNotifier:
    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def notify(self, title: str, body: str) -> None:
        self.messages.append((title, body))


@pytest.fixture
def store(tmp_path) -> Store:
    return Store(db_path=tmp_path / "monitor.db")


@pytest.fixture
def fake_client() -> FakeGitHubClient:
    return FakeGitHubClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class RecordingBus(EventBus):
    def __init__(self):
        super().__init__()
        self.published: list[dict] = []

    def publish(self, event_type: str, **payload) -> None:
        self.published.append({"type": event_type, **payload})
        super().publish(event_type, **payload)


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()
