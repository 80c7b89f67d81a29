"""
Execute the side effects for a classified pull request.

| Outcome    | Effect                                                       |
|------------|--------------------------------------------------------------|
| MERGED     | mark the record closed, publish ``pr-closed``                |
| UP_TO_DATE | nothing                                                      |
| BEHIND     | ask GitHub to update the branch; notify if that fails        |
| CONFLICTS  | notify                                                       |
| BLOCKED    | notify                                                       |
| UNKNOWN    | notify                                                       |

Notifications are gated by ``notifications_enabled``; the ``pr-closed``
event is not.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import assert_never

from .classifier import PrOutcome
from .config import EngineSettings
from .errors import PRMonitorError, RemoteUpdateFailed, StoreIOFailure
from .events import EventBus
from .github import GitHubAPIError, GitHubClient, PullStatus
from .notify import Notifier
from .store import Store, TrackedPullRequest, format_closed_at


logger = logging.getLogger(__name__)

UPDATE_FAILED_TITLE = "Failed to update PR"


@dataclass
class Notification:
    title: str
    body: str


@dataclass
class DispatchResult:
    """Effects executed for one record in one cycle."""
    outcome: PrOutcome
    closed: bool = False
    branch_update_requested: bool = False
    branch_updated: bool = False
    notification: Notification | None = None
    error: PRMonitorError | None = None


def not_updated_title(number: int) -> str:
    return f"PR Not Updated: {number}"


class ActionDispatcher:
    """Applies store mutations, GitHub calls and notifications for outcomes.

    One dispatcher is built per monitor loop, bound to the GitHub client
    created from the token captured when the loop started.
    """

    def __init__(
        self,
        store: Store,
        client: GitHubClient,
        notifier: Notifier,
        events: EventBus,
    ):
        self.store = store
        self.client = client
        self.notifier = notifier
        self.events = events

    async def dispatch(
        self,
        record: TrackedPullRequest,
        outcome: PrOutcome,
        settings: EngineSettings,
        status: PullStatus | None = None,
    ) -> DispatchResult:
        result = DispatchResult(outcome=outcome)
        number = record.number

        if outcome is PrOutcome.MERGED:
            logger.info("PR %s#%d was merged, marking closed", record.full_name, number)
            await self._close(record, status, result)
        elif outcome is PrOutcome.UP_TO_DATE:
            logger.info("PR %s#%d is up to date", record.full_name, number)
        elif outcome is PrOutcome.BEHIND:
            logger.info("PR %s#%d is behind, updating branch", record.full_name, number)
            await self._update_branch(record, status, settings, result)
        elif outcome is PrOutcome.CONFLICTS:
            logger.info("PR %s#%d has conflicts", record.full_name, number)
            await self._alert(settings, result, number, f"PR #{number} has conflicts, please check")
        elif outcome is PrOutcome.BLOCKED:
            logger.info("PR %s#%d is blocked", record.full_name, number)
            await self._alert(settings, result, number, f"PR #{number} is blocked, please check")
        elif outcome is PrOutcome.UNKNOWN:
            logger.info("PR %s#%d status is unknown", record.full_name, number)
            await self._alert(
                settings, result, number, f"PR #{number} has an unknown status, please check"
            )
        else:
            assert_never(outcome)

        return result

    async def _close(
        self,
        record: TrackedPullRequest,
        status: PullStatus | None,
        result: DispatchResult,
    ) -> None:
        closed_at = format_closed_at(_merge_time(status))
        try:
            changed = await asyncio.to_thread(
                self.store.mark_closed, record.owner, record.repo, record.number, closed_at
            )
        except StoreIOFailure as exc:
            logger.exception("Failed to mark PR %s#%d closed", record.full_name, record.number)
            result.error = exc
            self.events.error(f"Failed to mark PR #{record.number} closed: {exc}")
            return

        if changed:
            result.closed = True
            self.events.pr_closed(record.number)
        else:
            logger.info("PR %s#%d no longer open in store; skipping", record.full_name, record.number)

    async def _update_branch(
        self,
        record: TrackedPullRequest,
        status: PullStatus | None,
        settings: EngineSettings,
        result: DispatchResult,
    ) -> None:
        result.branch_update_requested = True
        head_sha = status.head_sha if status else None
        try:
            await asyncio.to_thread(
                self.client.update_branch, record.owner, record.repo, record.number, head_sha
            )
        except GitHubAPIError as exc:
            failure = RemoteUpdateFailed(f"Can't update pr branch: {exc}")
            logger.error("Failed to update PR branch %s#%d: %s", record.full_name, record.number, exc)
            result.error = failure
            if settings.notifications_enabled:
                await self._notify(result, UPDATE_FAILED_TITLE, failure.message)
            return

        result.branch_updated = True

    async def _alert(
        self,
        settings: EngineSettings,
        result: DispatchResult,
        number: int,
        body: str,
    ) -> None:
        if settings.notifications_enabled:
            await self._notify(result, not_updated_title(number), body)

    async def _notify(self, result: DispatchResult, title: str, body: str) -> None:
        result.notification = Notification(title=title, body=body)
        await asyncio.to_thread(self.notifier.notify, title, body)


def _merge_time(status: PullStatus | None) -> datetime:
    raw = None
    if status is not None:
        raw = status.merged_at or status.closed_at
    if raw:
        try:
            return datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)
