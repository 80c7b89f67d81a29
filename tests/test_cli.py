from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from prmonitor.cli import main


@pytest.fixture
def runner(tmp_path, monkeypatch) -> CliRunner:
    monkeypatch.setenv("PRMONITOR_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    return CliRunner()


def test_cli_help_lists_commands(runner):
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    for command in ("add", "list", "delete", "token", "settings", "check", "run", "serve"):
        assert command in result.output


def test_init_writes_sample_config(runner, tmp_path):
    result = runner.invoke(main, ["init"])
    assert result.exit_code == 0
    assert (tmp_path / "home" / "prmonitor.yml").exists()
    assert (tmp_path / "home" / "monitor.db").exists()

    again = runner.invoke(main, ["init"])
    assert "Skipped" in again.output


def test_add_rejects_invalid_url(runner):
    result = runner.invoke(main, ["add", "https://github.com/acme/widgets/issues/1"])
    assert result.exit_code != 0
    assert "InvalidUrl" in result.output


def test_add_without_token_fails(runner):
    result = runner.invoke(main, ["add", "https://github.com/acme/widgets/pull/42"])
    assert result.exit_code != 0
    assert "NoCredential" in result.output


def test_list_empty(runner):
    result = runner.invoke(main, ["list"])
    assert result.exit_code == 0
    assert "No pull requests tracked." in result.output

    as_json = runner.invoke(main, ["list", "--json"])
    assert json.loads(as_json.output) == []


def test_token_set_and_status(runner):
    assert "Token: not configured" in runner.invoke(main, ["token", "status"]).output

    result = runner.invoke(main, ["token", "set", "--token", "ghp_example"])
    assert result.exit_code == 0
    assert "Token saved." in result.output
    assert "Token: configured" in runner.invoke(main, ["token", "status"]).output


def test_token_set_prompts_when_missing(runner):
    result = runner.invoke(main, ["token", "set"], input="ghp_prompted\n")
    assert result.exit_code == 0
    assert "Token: configured" in runner.invoke(main, ["token", "status"]).output


def test_settings_round_trip(runner):
    assert runner.invoke(main, ["settings", "interval", "10"]).exit_code == 0
    assert runner.invoke(main, ["settings", "notifications", "off"]).exit_code == 0
    theme = runner.invoke(main, ["settings", "theme", "dark"])
    assert "Theme set to dark" in theme.output

    result = runner.invoke(main, ["settings", "show", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output) == {
        "refresh_time_minutes": 10,
        "notifications": False,
        "theme": "dark",
        "token": False,
    }


def test_settings_interval_rejects_zero(runner):
    result = runner.invoke(main, ["settings", "interval", "0"])
    assert result.exit_code != 0


def test_delete_untracked_pr_fails(runner):
    result = runner.invoke(main, ["delete", "42"])
    assert result.exit_code != 0
    assert "PR #42 is not tracked" in result.output


def test_check_without_token_fails(runner):
    result = runner.invoke(main, ["check"])
    assert result.exit_code != 0
    assert "NoCredential" in result.output


def test_token_status_check_requires_token(runner):
    result = runner.invoke(main, ["token", "status", "--check"])
    assert result.exit_code != 0
    assert "NoCredential" in result.output


def test_token_status_check_reports_rate_limit(runner, monkeypatch):
    payload = {"resources": {"core": {"limit": 5000, "remaining": 4999}}}
    monkeypatch.setattr("prmonitor.github.GitHubClient.check_rate_limit", lambda self: payload)
    runner.invoke(main, ["token", "set", "--token", "ghp_example"])

    result = runner.invoke(main, ["token", "status", "--check"])

    assert result.exit_code == 0
    assert "Rate limit: 4999/5000 requests remaining" in result.output
