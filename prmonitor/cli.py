"""
PRMonitor CLI - track pull requests and keep their branches up to date.

Commands:
    init      - Create the data directory and sample configuration
    add       - Track a pull request by URL
    list      - Show tracked pull requests
    delete    - Stop tracking a pull request
    token     - Manage the GitHub API token
    settings  - Show or change monitor settings
    check     - Run one monitor cycle in the foreground
    run       - Run the monitor loop until interrupted
    serve     - Serve the HTTP API used by desktop shells
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict
from pathlib import Path

import click
from dotenv import load_dotenv

# Load .env file from current directory
load_dotenv()
load_dotenv(Path.cwd() / ".env")

from . import __version__
from .config import CONFIG_FILENAME, PRMonitorConfig, ensure_prmonitor_dir
from .engine import MonitorEngine
from .errors import PRMonitorError
from .store import Store


SAMPLE_CONFIG = """\
# PRMonitor Configuration

github:
  api_base: https://api.github.com   # GitHub Enterprise: https://ghe.example.com/api/v3
  timeout: 30

notifications:
  backend: desktop   # desktop (notify-send), console, none

web:
  host: 127.0.0.1
  port: 8421

logging:
  level: INFO
  # file: ~/.prmonitor/monitor.log
"""


def _engine() -> MonitorEngine:
    config = PRMonitorConfig.load()
    engine = MonitorEngine(store=Store(), config=config)
    engine.seed_token_from_env()
    return engine


def _fail(exc: PRMonitorError) -> click.ClickException:
    return click.ClickException(f"{exc.kind}: {exc.message}")


def _print_prs(prs: list, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps([asdict(pr) for pr in prs], indent=2))
        return
    if not prs:
        click.echo("No pull requests tracked.")
        return
    for pr in prs:
        marker = "●" if pr.is_open else "✓"
        line = f"{marker} {pr.full_name}#{pr.number} [{pr.state}] {pr.title}"
        if pr.closed_at:
            line += f" (closed {pr.closed_at})"
        click.echo(line)
        click.echo(f"    {pr.url}")


@click.group()
@click.version_option(version=__version__)
def main():
    """PRMonitor - keep tracked pull requests up to date."""
    pass


@main.command()
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Create the data directory, database and sample configuration."""
    data_dir = ensure_prmonitor_dir()
    click.echo(f"Initializing PRMonitor in: {data_dir}")

    store = Store()
    click.echo(f"  Database: {store.db_path}")

    config_path = data_dir / CONFIG_FILENAME
    if not config_path.exists() or force:
        config_path.write_text(SAMPLE_CONFIG)
        click.echo(f"  Created: {config_path}")
    else:
        click.echo(f"  Skipped: {config_path} (already exists)")

    click.echo("\nPRMonitor initialized! Next steps:")
    click.echo("  1. Run: prmonitor token set")
    click.echo("  2. Run: prmonitor add https://github.com/<owner>/<repo>/pull/<number>")
    click.echo("  3. Run: prmonitor run")


@main.command()
@click.argument("url")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def add(url: str, as_json: bool):
    """Track the pull request at URL."""
    engine = _engine()
    try:
        prs = asyncio.run(engine.add_tracked_pr(url))
    except PRMonitorError as exc:
        raise _fail(exc) from exc
    if not as_json:
        click.echo(f"Tracking {url}")
    _print_prs(prs, as_json)


@main.command(name="list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_prs(as_json: bool):
    """Show all tracked pull requests, open and closed."""
    try:
        prs = _engine().list_tracked_prs()
    except PRMonitorError as exc:
        raise _fail(exc) from exc
    _print_prs(prs, as_json)


@main.command()
@click.argument("number", type=int)
@click.option("--owner", default=None, help="Only delete the PR in this owner's repo")
@click.option("--repo", default=None, help="Only delete the PR in this repo")
def delete(number: int, owner: str | None, repo: str | None):
    """Stop tracking pull request NUMBER."""
    try:
        deleted = _engine().delete_pr(number, owner=owner, repo=repo)
    except PRMonitorError as exc:
        raise _fail(exc) from exc
    if deleted == 0:
        raise click.ClickException(f"PR #{number} is not tracked")
    click.echo(f"Deleted {deleted} tracked PR(s) with number {number}")


# =============================================================================
# Token
# =============================================================================

@main.group(name="token")
def token_group() -> None:
    """Manage the GitHub API token."""


@token_group.command(name="set")
@click.option("--token", prompt=True, hide_input=True, help="GitHub personal access token")
def token_set(token: str):
    """Store a token, replacing any existing one."""
    try:
        _engine().set_token(token)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--token") from exc
    except PRMonitorError as exc:
        raise _fail(exc) from exc
    click.echo("Token saved.")


@token_group.command(name="status")
@click.option("--check", is_flag=True, help="Also query GitHub for the token's rate limit")
def token_status(check: bool):
    """Show whether a token is stored."""
    engine = _engine()
    has_token = engine.has_token()
    click.echo("Token: configured" if has_token else "Token: not configured")
    if not check:
        return
    try:
        core = engine.check_rate_limit()
    except PRMonitorError as exc:
        raise _fail(exc) from exc
    click.echo(f"Rate limit: {core.get('remaining', '?')}/{core.get('limit', '?')} requests remaining")


# =============================================================================
# Settings
# =============================================================================

@main.group(name="settings")
def settings_group() -> None:
    """Show or change monitor settings."""


@settings_group.command(name="show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def settings_show(as_json: bool):
    """Show current settings."""
    engine = _engine()
    data = {
        "refresh_time_minutes": engine.get_refresh_interval(),
        "notifications": engine.get_notifications_enabled(),
        "theme": engine.get_theme(),
        "token": engine.has_token(),
    }
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    click.echo(f"Refresh interval: {data['refresh_time_minutes']} min")
    click.echo(f"Notifications:    {'on' if data['notifications'] else 'off'}")
    click.echo(f"Theme:            {data['theme']}")
    click.echo(f"Token:            {'configured' if data['token'] else 'not configured'}")


@settings_group.command(name="interval")
@click.argument("minutes", type=click.IntRange(min=1))
def settings_interval(minutes: int):
    """Set the refresh interval in MINUTES."""
    # No monitor loop runs in this process
    _engine().store.set_refresh_interval_seconds(minutes * 60)
    click.echo(f"Refresh interval set to {minutes} min")


@settings_group.command(name="notifications")
@click.argument("state", type=click.Choice(["on", "off"]))
def settings_notifications(state: str):
    """Turn notifications on or off."""
    _engine().set_notifications_enabled(state == "on")
    click.echo(f"Notifications {state}")


@settings_group.command(name="theme")
@click.argument("theme")
def settings_theme(theme: str):
    """Set the UI theme preference (e.g. system, light, dark)."""
    _engine().set_theme(theme)
    click.echo(f"Theme set to {theme}")


# =============================================================================
# Monitor
# =============================================================================

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check(as_json: bool):
    """Check every open tracked PR once and apply the needed actions."""
    engine = _engine()
    try:
        results = asyncio.run(engine.scheduler.run_once())
    except PRMonitorError as exc:
        raise _fail(exc) from exc

    if as_json:
        click.echo(json.dumps([
            {
                "outcome": r.outcome.value,
                "closed": r.closed,
                "branch_updated": r.branch_updated,
                "notification": asdict(r.notification) if r.notification else None,
                "error": r.error.message if r.error else None,
            }
            for r in results
        ], indent=2))
        return

    click.echo(f"Checked {len(results)} open PR(s)")
    for r in results:
        line = f"  {r.outcome.value}"
        if r.closed:
            line += " → closed"
        if r.branch_updated:
            line += " → branch update requested"
        if r.error:
            line += f" ⚠️  {r.error.message}"
        click.echo(line)


@main.command()
def run():
    """Run the monitor loop in the foreground until interrupted."""
    from .web.server import setup_logging

    config = PRMonitorConfig.load()
    setup_logging(config)
    engine = MonitorEngine(store=Store(), config=config)
    engine.seed_token_from_env()

    async def _run() -> None:
        if not await engine.start_monitor():
            raise click.ClickException("Monitor not started: no token configured (prmonitor token set)")
        try:
            await engine.scheduler.join()
        finally:
            await engine.stop_monitor()

    click.echo(f"Monitoring every {engine.get_refresh_interval()} min. Press Ctrl+C to stop.")
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("\nMonitor stopped.")


@main.command()
@click.option("--host", default=None, help="Bind address (default from prmonitor.yml)")
@click.option("--port", default=None, type=int, help="Port (default from prmonitor.yml)")
def serve(host: str | None, port: int | None):
    """Serve the HTTP API and event stream."""
    from .web.server import run_server

    run_server(host=host, port=port)


if __name__ == "__main__":
    main()
