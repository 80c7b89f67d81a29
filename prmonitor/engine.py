"""
Public operations of the PR monitor.

``MonitorEngine`` is what the CLI and the HTTP API call into: it validates
input, talks to the store and GitHub for foreground requests, and owns the
``SchedulerHandle`` that runs the background loop.

Foreground failures are raised as ``PRMonitorError`` subclasses; background
failures are logged and surfaced through notifications and the event bus.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Any

from .config import PRMonitorConfig
from .errors import InvalidUrl, NoCredential, RemoteFetchFailed
from .events import EventBus
from .github import GitHubAPIError, GitHubClient, PullStatus, parse_pr_url
from .notify import Notifier, create_notifier
from .scheduler import ClientFactory, MonitorState, SchedulerHandle
from .store import (
    STATE_CLOSED,
    STATE_OPEN,
    Store,
    TrackedPullRequest,
    format_closed_at,
)


logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "GITHUB_TOKEN"


class MonitorEngine:
    def __init__(
        self,
        store: Store,
        config: PRMonitorConfig | None = None,
        notifier: Notifier | None = None,
        events: EventBus | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.config = config or PRMonitorConfig()
        self.store = store
        self.events = events or EventBus()
        self.notifier = notifier or create_notifier(self.config.notifications.backend)
        self.client_factory = client_factory or self._default_client
        self.scheduler = SchedulerHandle(
            store=self.store,
            client_factory=self.client_factory,
            notifier=self.notifier,
            events=self.events,
        )

    def _default_client(self, token: str) -> GitHubClient:
        return GitHubClient(
            token=token,
            api_base=self.config.github.api_base,
            timeout=self.config.github.timeout,
        )

    # =========================================================================
    # Monitor lifecycle
    # =========================================================================

    async def start_monitor(self) -> bool:
        return await self.scheduler.start()

    async def stop_monitor(self) -> None:
        await self.scheduler.stop()

    def monitor_state(self) -> MonitorState:
        return self.scheduler.state

    # =========================================================================
    # Tracked pull requests
    # =========================================================================

    async def add_tracked_pr(self, url: str) -> list[TrackedPullRequest]:
        """
        Track the pull request at ``url`` and return the full tracked list.

        Raises:
            InvalidUrl: the URL is not ``<host>/<owner>/<repo>/pull/<number>``
            NoCredential: no API token is stored
            RemoteFetchFailed: GitHub could not resolve the PR
            DuplicateRecord: the PR is already tracked
        """
        logger.info("Adding item: %s", url)
        parsed = parse_pr_url(url)
        if parsed is None:
            logger.warning("Failed to parse PR: %s", url)
            raise InvalidUrl(url)
        owner, repo, number = parsed
        logger.info("Parsed PR: owner=%s, repo=%s, number=%d", owner, repo, number)

        token = await asyncio.to_thread(self.store.get_token)
        if not token:
            raise NoCredential()

        client = self.client_factory(token)
        try:
            status = await asyncio.to_thread(client.get_pull, owner, repo, number)
        except GitHubAPIError as exc:
            logger.error("Can't load PR details for %s/%s#%d: %s", owner, repo, number, exc)
            raise RemoteFetchFailed(f"Can't load pr details: {exc}") from exc

        record = _record_from_status(status, owner, repo, number, url)
        await asyncio.to_thread(self.store.add_pull_request, record)
        return await asyncio.to_thread(self.store.list_pull_requests)

    def list_tracked_prs(self) -> list[TrackedPullRequest]:
        return self.store.list_pull_requests()

    def delete_pr(self, number: int, owner: str | None = None, repo: str | None = None) -> int:
        """Stop tracking PR ``number``; returns how many records were removed."""
        deleted = self.store.delete_pull_request(number, owner=owner, repo=repo)
        logger.info("Deleted %d record(s) for PR #%d", deleted, number)
        return deleted

    # =========================================================================
    # Settings
    # =========================================================================

    def get_refresh_interval(self) -> int:
        """Refresh interval in minutes."""
        return max(1, self.store.get_refresh_interval_seconds() // 60)

    async def set_refresh_interval(self, minutes: int) -> None:
        """Persist a new interval, then stop and start the monitor so it takes effect."""
        if minutes <= 0:
            raise ValueError("Refresh interval must be at least one minute")
        await asyncio.to_thread(self.store.set_refresh_interval_seconds, minutes * 60)
        await self.scheduler.restart()

    def get_notifications_enabled(self) -> bool:
        return self.store.get_notifications_enabled()

    def set_notifications_enabled(self, enabled: bool) -> None:
        self.store.set_notifications_enabled(enabled)

    def get_theme(self) -> str:
        return self.store.get_theme()

    def set_theme(self, theme: str) -> None:
        self.store.set_theme(theme)

    def get_token(self) -> str | None:
        return self.store.get_token()

    def has_token(self) -> bool:
        return self.store.has_token()

    def check_rate_limit(self) -> dict[str, Any]:
        """Ask GitHub for the rate limit of the stored token."""
        token = self.store.get_token()
        if not token:
            raise NoCredential()
        try:
            data = self.client_factory(token).check_rate_limit()
        except GitHubAPIError as exc:
            raise RemoteFetchFailed(f"Can't check rate limit: {exc}") from exc
        return data.get("resources", {}).get("core", {})

    def set_token(self, token: str) -> None:
        token = token.strip()
        if not token:
            raise ValueError("Token must not be empty")
        self.store.set_token(token)

    def seed_token_from_env(self) -> bool:
        """Store ``$GITHUB_TOKEN`` when no token has been saved yet."""
        env_token = os.environ.get(TOKEN_ENV_VAR, "").strip()
        if env_token and not self.store.has_token():
            self.store.set_token(env_token)
            logger.info("Stored API token from %s", TOKEN_ENV_VAR)
            return True
        return False


def _record_from_status(
    status: PullStatus,
    owner: str,
    repo: str,
    number: int,
    url: str,
) -> TrackedPullRequest:
    closed_at = ""
    if status.closed_at:
        try:
            closed_at = format_closed_at(datetime.fromisoformat(status.closed_at.replace("Z", "+00:00")))
        except ValueError:
            closed_at = status.closed_at
    return TrackedPullRequest(
        owner=owner,
        repo=repo,
        number=number,
        title=status.title,
        state=STATE_CLOSED if status.state == STATE_CLOSED else STATE_OPEN,
        closed_at=closed_at,
        url=status.html_url or url,
    )
