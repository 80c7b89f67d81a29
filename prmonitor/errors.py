"""
Typed failures surfaced by the monitor engine.

Every error carries a stable ``kind`` string so shells (CLI, HTTP API) can
show or map it without matching on class names.
"""

from __future__ import annotations


class PRMonitorError(Exception):
    """Base error for PRMonitor operations."""

    kind = "PRMonitorError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidUrl(PRMonitorError):
    kind = "InvalidUrl"

    def __init__(self, url: str):
        super().__init__(f"Failed to parse PR: {url}")
        self.url = url


class NoCredential(PRMonitorError):
    kind = "NoCredential"

    def __init__(self) -> None:
        super().__init__("There is no token, can't check pr details")


class DuplicateRecord(PRMonitorError):
    kind = "DuplicateRecord"

    def __init__(self, owner: str, repo: str, number: int):
        super().__init__(f"Pull request already exists: {owner}/{repo}#{number}")
        self.owner = owner
        self.repo = repo
        self.number = number


class RemoteFetchFailed(PRMonitorError):
    kind = "RemoteFetchFailed"


class RemoteUpdateFailed(PRMonitorError):
    kind = "RemoteUpdateFailed"


class StoreIOFailure(PRMonitorError):
    kind = "StoreIOFailure"
