"""
Configuration management for PRMonitor.

Two layers:
- prmonitor.yml: process-level configuration (GitHub endpoint, notification
  backend, web server, logging), read once at startup.
- EngineSettings: user preferences persisted in the store as key/value rows
  and changed at runtime through the engine.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


CONFIG_FILENAME = "prmonitor.yml"
HOME_ENV_VAR = "PRMONITOR_HOME"

DEFAULT_REFRESH_INTERVAL_SECONDS = 300
DEFAULT_THEME = "system"


@dataclass
class GitHubConfig:
    """GitHub API endpoint settings."""

    api_base: str = "https://api.github.com"
    timeout: float = 30.0


@dataclass
class NotificationsConfig:
    """Notification sink selection."""

    backend: str = "desktop"  # desktop, console, none


@dataclass
class WebConfig:
    """HTTP API bind address."""

    host: str = "127.0.0.1"
    port: int = 8421


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str | None = None  # defaults to <data dir>/monitor.log


@dataclass
class EngineSettings:
    """User preferences persisted in the settings table."""

    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS
    notifications_enabled: bool = True
    theme: str = DEFAULT_THEME

    @property
    def refresh_interval_minutes(self) -> int:
        return max(1, self.refresh_interval_seconds // 60)


@dataclass
class PRMonitorConfig:
    """Complete PRMonitor process configuration."""

    github: GitHubConfig = field(default_factory=GitHubConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    data_dir: Path | None = None

    @property
    def log_path(self) -> Path:
        if self.logging.file:
            return Path(self.logging.file).expanduser()
        return (self.data_dir or get_prmonitor_dir()) / "monitor.log"

    @classmethod
    def load(cls, data_dir: Path | None = None) -> "PRMonitorConfig":
        """Load configuration from the data directory."""
        data_dir = (data_dir or get_prmonitor_dir()).resolve()
        config = cls(data_dir=data_dir)

        config_path = data_dir / CONFIG_FILENAME
        if config_path.exists():
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            config = cls._parse_config(data, data_dir=data_dir)

        return config

    @classmethod
    def _parse_config(cls, data: dict[str, Any], data_dir: Path) -> "PRMonitorConfig":
        config = cls(data_dir=data_dir)

        github_data = data.get("github", {}) or {}
        config.github = GitHubConfig(
            api_base=str(github_data.get("api_base", "https://api.github.com")).rstrip("/"),
            timeout=float(github_data.get("timeout", 30.0)),
        )

        notifications_data = data.get("notifications", {}) or {}
        backend = str(notifications_data.get("backend", "desktop")).lower()
        if backend not in {"desktop", "console", "none"}:
            raise ValueError(
                f"Unknown notifications backend '{backend}' (expected desktop, console or none)"
            )
        config.notifications = NotificationsConfig(backend=backend)

        web_data = data.get("web", {}) or {}
        config.web = WebConfig(
            host=web_data.get("host", "127.0.0.1"),
            port=int(web_data.get("port", 8421)),
        )

        logging_data = data.get("logging", {}) or {}
        config.logging = LoggingConfig(
            level=str(logging_data.get("level", "INFO")).upper(),
            file=logging_data.get("file"),
        )

        return config


def get_prmonitor_dir() -> Path:
    """Get the PRMonitor data directory (``$PRMONITOR_HOME`` or ``~/.prmonitor``)."""

    forced = os.environ.get(HOME_ENV_VAR)
    if forced:
        return Path(forced).expanduser()
    return Path.home() / ".prmonitor"


def ensure_prmonitor_dir() -> Path:
    """Ensure the data directory exists and return its path."""

    prmonitor_dir = get_prmonitor_dir()
    prmonitor_dir.mkdir(parents=True, exist_ok=True)
    return prmonitor_dir
