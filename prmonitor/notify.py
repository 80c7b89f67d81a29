"""
Notification sinks.

The monitor only ever calls ``notify(title, body)``; a sink must not raise.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Protocol

import click


logger = logging.getLogger(__name__)

APP_NAME = "PR Monitor"


class Notifier(Protocol):
    def notify(self, title: str, body: str) -> None: ...


class DesktopNotifier:
    """Show notifications with ``notify-send`` when it is available."""

    def __init__(self, app_name: str = APP_NAME, timeout: float = 5.0):
        self.app_name = app_name
        self.timeout = timeout
        self._binary = shutil.which("notify-send")
        if self._binary is None:
            logger.info("notify-send not found; desktop notifications will be logged only")

    def notify(self, title: str, body: str) -> None:
        logger.info("Notification: %s - %s", title, body)
        if self._binary is None:
            return
        try:
            subprocess.run(
                [self._binary, "--app-name", self.app_name, title, body],
                check=False,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Failed to show desktop notification: %s", exc)


class ConsoleNotifier:
    """Print notifications to stderr."""

    def notify(self, title: str, body: str) -> None:
        click.echo(f"🔔 {title}: {body}", err=True)


class NullNotifier:
    def notify(self, title: str, body: str) -> None:
        logger.debug("Notification suppressed: %s - %s", title, body)


def create_notifier(backend: str) -> Notifier:
    """Build the notifier for a ``notifications.backend`` config value."""
    if backend == "desktop":
        return DesktopNotifier()
    if backend == "console":
        return ConsoleNotifier()
    if backend == "none":
        return NullNotifier()
    raise ValueError(f"Unknown notifications backend: {backend}")
