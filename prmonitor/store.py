"""
SQLite database storage for PRMonitor.

Schema:
- tracked_pull_requests: PRs the user asked to monitor, keyed by (owner, repo, number)
- settings: engine preferences as key/value rows
- api_token: the single GitHub credential

Every public method opens its own connection under the store's lock and
holds it for one short transaction, so the store can be shared by the
foreground API and the background monitor loop (including from worker threads).
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from .config import (
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    DEFAULT_THEME,
    EngineSettings,
    get_prmonitor_dir,
)
from .errors import DuplicateRecord, StoreIOFailure


DB_FILENAME = "monitor.db"
CURRENT_SCHEMA_VERSION = 1

STATE_OPEN = "open"
STATE_CLOSED = "closed"
CLOSED_AT_FORMAT = "%d/%m/%Y %H:%M"

SETTING_REFRESH_INTERVAL = "refresh_interval_seconds"
SETTING_NOTIFICATIONS = "notifications_enabled"
SETTING_THEME = "theme"

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

-- Pull requests tracked by the monitor
CREATE TABLE IF NOT EXISTS tracked_pull_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    repo TEXT NOT NULL,
    number INTEGER NOT NULL,
    title TEXT NOT NULL,
    state TEXT NOT NULL,
    closed_at TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(owner, repo, number)
);

-- Engine preferences
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- GitHub credential (at most one row)
CREATE TABLE IF NOT EXISTS api_token (
    id INTEGER PRIMARY KEY,
    key TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tracked_state ON tracked_pull_requests(state);
"""


@dataclass
class TrackedPullRequest:
    """Stored tracked pull request."""
    owner: str
    repo: str
    number: int
    title: str
    state: str
    closed_at: str
    url: str

    @property
    def is_open(self) -> bool:
        return self.state == STATE_OPEN

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def format_closed_at(moment: datetime) -> str:
    """Format a close timestamp the way it is stored and displayed."""
    return moment.strftime(CLOSED_AT_FORMAT)


class Store:
    """SQLite storage manager for PRMonitor."""

    def __init__(self, db_path: Path | None = None):
        self._lock = threading.Lock()
        if db_path is None:
            db_path = get_prmonitor_dir() / DB_FILENAME
        self.db_path = db_path
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Ensure database schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)
            if self._get_schema_version(conn) < CURRENT_SCHEMA_VERSION:
                self._set_schema_version(conn, CURRENT_SCHEMA_VERSION)

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1").fetchone()
        if row is None:
            return 0
        return int(row[0]) if row[0] is not None else 0

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for one locked connection and transaction."""
        with self._lock:
            try:
                conn = sqlite3.connect(self.db_path)
            except sqlite3.Error as exc:
                raise StoreIOFailure(f"Cannot open database {self.db_path}: {exc}") from exc
            conn.row_factory = sqlite3.Row
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as exc:
                raise StoreIOFailure(f"Database error: {exc}") from exc
            finally:
                conn.close()

    def _now(self) -> str:
        """Get current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _row_to_pr(row: sqlite3.Row) -> TrackedPullRequest:
        return TrackedPullRequest(
            owner=row["owner"],
            repo=row["repo"],
            number=int(row["number"]),
            title=row["title"],
            state=row["state"],
            closed_at=row["closed_at"] or "",
            url=row["url"],
        )

    # =========================================================================
    # Tracked pull requests
    # =========================================================================

    def add_pull_request(self, pr: TrackedPullRequest) -> TrackedPullRequest:
        """Insert a tracked PR; raises DuplicateRecord if the triple exists."""
        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO tracked_pull_requests
                        (owner, repo, number, title, state, closed_at, url, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        pr.owner,
                        pr.repo,
                        pr.number,
                        pr.title,
                        pr.state,
                        pr.closed_at,
                        pr.url,
                        self._now(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRecord(pr.owner, pr.repo, pr.number) from exc
        return pr

    def get_pull_request(self, owner: str, repo: str, number: int) -> TrackedPullRequest | None:
        """Get a tracked PR by its natural key."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tracked_pull_requests WHERE owner = ? AND repo = ? AND number = ?",
                (owner, repo, number),
            ).fetchone()
            return self._row_to_pr(row) if row else None

    def list_pull_requests(self, state: str | None = None) -> list[TrackedPullRequest]:
        """List tracked PRs, optionally filtered by lifecycle state."""
        with self._connect() as conn:
            query = "SELECT * FROM tracked_pull_requests"
            params: list[Any] = []
            if state is not None:
                query += " WHERE state = ?"
                params.append(state)
            query += " ORDER BY id"
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_pr(row) for row in rows]

    def list_open_pull_requests(self) -> list[TrackedPullRequest]:
        return self.list_pull_requests(state=STATE_OPEN)

    def mark_closed(self, owner: str, repo: str, number: int, closed_at: str = "") -> bool:
        """
        Transition an open PR to closed.

        Returns:
            True if a row moved from open to closed, False if the row is gone
            or was already closed.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE tracked_pull_requests
                SET state = ?, closed_at = ?
                WHERE owner = ? AND repo = ? AND number = ? AND state = ?
                """,
                (STATE_CLOSED, closed_at, owner, repo, number, STATE_OPEN),
            )
            return cursor.rowcount > 0

    def delete_pull_request(
        self,
        number: int,
        owner: str | None = None,
        repo: str | None = None,
    ) -> int:
        """Delete tracked PRs by number, narrowed by owner/repo when given."""
        with self._connect() as conn:
            query = "DELETE FROM tracked_pull_requests WHERE number = ?"
            params: list[Any] = [number]
            if owner is not None:
                query += " AND owner = ?"
                params.append(owner)
            if repo is not None:
                query += " AND repo = ?"
                params.append(repo)
            cursor = conn.execute(query, params)
            return cursor.rowcount

    # =========================================================================
    # Settings
    # =========================================================================

    def get_setting(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_refresh_interval_seconds(self) -> int:
        raw = self.get_setting(SETTING_REFRESH_INTERVAL)
        try:
            value = int(raw) if raw is not None else DEFAULT_REFRESH_INTERVAL_SECONDS
        except ValueError:
            return DEFAULT_REFRESH_INTERVAL_SECONDS
        return value if value > 0 else DEFAULT_REFRESH_INTERVAL_SECONDS

    def set_refresh_interval_seconds(self, seconds: int) -> None:
        if seconds <= 0:
            raise ValueError("Refresh interval must be positive")
        self.set_setting(SETTING_REFRESH_INTERVAL, str(int(seconds)))

    def get_notifications_enabled(self) -> bool:
        raw = self.get_setting(SETTING_NOTIFICATIONS)
        if raw is None:
            return True
        return raw.lower() in {"1", "true", "yes", "on"}

    def set_notifications_enabled(self, enabled: bool) -> None:
        self.set_setting(SETTING_NOTIFICATIONS, "true" if enabled else "false")

    def get_theme(self) -> str:
        return self.get_setting(SETTING_THEME) or DEFAULT_THEME

    def set_theme(self, theme: str) -> None:
        self.set_setting(SETTING_THEME, theme)

    def load_settings(self) -> EngineSettings:
        """Read all engine preferences, falling back to defaults."""
        return EngineSettings(
            refresh_interval_seconds=self.get_refresh_interval_seconds(),
            notifications_enabled=self.get_notifications_enabled(),
            theme=self.get_theme(),
        )

    # =========================================================================
    # API token
    # =========================================================================

    def get_token(self) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT key FROM api_token ORDER BY id DESC LIMIT 1").fetchone()
            return row["key"] if row else None

    def has_token(self) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT count(id) FROM api_token").fetchone()
            return int(row[0]) > 0

    def set_token(self, token: str) -> None:
        """Replace any stored token with ``token``."""
        with self._connect() as conn:
            conn.execute("DELETE FROM api_token")
            conn.execute("INSERT INTO api_token (key) VALUES (?)", (token,))
