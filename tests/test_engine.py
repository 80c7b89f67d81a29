from __future__ import annotations

import asyncio
import threading

import pytest

from prmonitor.engine import MonitorEngine
from prmonitor.errors import DuplicateRecord, InvalidUrl, NoCredential, RemoteFetchFailed
from prmonitor.github import GitHubAPIError
from prmonitor.scheduler import MonitorState
from prmonitor.store import STATE_CLOSED, STATE_OPEN

from .conftest import make_status


PR_URL = "https://github.com/acme/widgets/pull/42"


@pytest.fixture
def engine(store, fake_client, notifier, bus) -> MonitorEngine:
    return MonitorEngine(
        store=store,
        notifier=notifier,
        events=bus,
        client_factory=lambda token: fake_client,
    )


def test_add_rejects_invalid_url(engine):
    with pytest.raises(InvalidUrl):
        asyncio.run(engine.add_tracked_pr("https://github.com/acme/widgets/issues/42"))


def test_add_requires_token(engine, fake_client):
    fake_client.set_status(make_status())
    with pytest.raises(NoCredential):
        asyncio.run(engine.add_tracked_pr(PR_URL))
    assert fake_client.fetch_calls == []


def test_add_propagates_fetch_failure(engine, fake_client, store):
    engine.set_token("token")
    fake_client.set_status(GitHubAPIError("GitHub API error: 401 - Bad credentials", 401))

    with pytest.raises(RemoteFetchFailed, match="Bad credentials"):
        asyncio.run(engine.add_tracked_pr(PR_URL))
    assert store.list_pull_requests() == []


def test_add_duplicate_rejected_other_number_accepted(engine, fake_client):
    engine.set_token("token")
    fake_client.set_status(make_status(number=42), number=42)
    fake_client.set_status(make_status(number=43), number=43)

    asyncio.run(engine.add_tracked_pr(PR_URL))
    with pytest.raises(DuplicateRecord):
        asyncio.run(engine.add_tracked_pr(PR_URL))
    prs = asyncio.run(engine.add_tracked_pr("https://github.com/acme/widgets/pull/43"))

    assert [pr.number for pr in prs] == [42, 43]


def test_add_already_merged_pr_is_stored_closed(engine, fake_client):
    engine.set_token("token")
    fake_client.set_status(
        make_status(state="closed", merged=True, merged_at="2024-05-01T10:00:00Z", closed_at="2024-05-01T10:00:00Z")
    )

    prs = asyncio.run(engine.add_tracked_pr(PR_URL))

    assert prs[0].state == STATE_CLOSED
    assert prs[0].closed_at == "01/05/2024 10:00"


def test_add_keeps_store_calls_off_the_event_loop(engine, fake_client, store, monkeypatch):
    engine.set_token("token")
    fake_client.set_status(make_status())
    threads = []

    for name in ("get_token", "add_pull_request", "list_pull_requests"):
        original = getattr(store, name)

        def recording(*args, _original=original, **kwargs):
            threads.append(threading.current_thread())
            return _original(*args, **kwargs)

        monkeypatch.setattr(store, name, recording)

    asyncio.run(engine.add_tracked_pr(PR_URL))

    assert len(threads) == 3
    assert all(thread is not threading.main_thread() for thread in threads)


def test_delete_pr(engine, fake_client):
    engine.set_token("token")
    fake_client.set_status(make_status())
    asyncio.run(engine.add_tracked_pr(PR_URL))

    assert engine.delete_pr(42) == 1
    assert engine.delete_pr(42) == 0
    assert engine.list_tracked_prs() == []


def test_settings_accessors(engine, store):
    assert engine.get_refresh_interval() == 5
    assert engine.get_notifications_enabled() is True
    assert engine.get_theme() == "system"
    assert engine.get_token() is None

    asyncio.run(engine.set_refresh_interval(15))
    engine.set_notifications_enabled(False)
    engine.set_theme("dark")
    engine.set_token("  abc  ")

    assert store.get_refresh_interval_seconds() == 900
    assert engine.get_refresh_interval() == 15
    assert engine.get_notifications_enabled() is False
    assert engine.get_theme() == "dark"
    assert engine.get_token() == "abc"
    assert engine.has_token() is True


def test_set_refresh_interval_rejects_non_positive(engine):
    with pytest.raises(ValueError):
        asyncio.run(engine.set_refresh_interval(0))


def test_set_refresh_interval_restarts_running_monitor(engine, store):
    engine.set_token("token")

    async def scenario():
        await engine.start_monitor()
        await engine.set_refresh_interval(2)
        state = engine.monitor_state()
        await engine.stop_monitor()
        await engine.scheduler.join()
        return state

    assert asyncio.run(scenario()) is MonitorState.RUNNING
    assert engine.scheduler.spawn_count == 2


def test_set_refresh_interval_starts_stopped_monitor_with_token(engine, store):
    engine.set_token("token")

    async def scenario():
        await engine.set_refresh_interval(2)
        state = engine.monitor_state()
        interval = engine.scheduler._current.interval_seconds
        await engine.stop_monitor()
        await engine.scheduler.join()
        return state, interval

    state, interval = asyncio.run(scenario())

    assert state is MonitorState.RUNNING
    assert interval == 120
    assert engine.scheduler.spawn_count == 1


def test_set_refresh_interval_without_token_stays_stopped(engine, store):
    asyncio.run(engine.set_refresh_interval(2))

    assert store.get_refresh_interval_seconds() == 120
    assert engine.monitor_state() is MonitorState.STOPPED
    assert engine.scheduler.spawn_count == 0


def test_check_rate_limit(engine):
    with pytest.raises(NoCredential):
        engine.check_rate_limit()

    engine.set_token("token")
    assert engine.check_rate_limit() == {"limit": 5000, "remaining": 4321}


def test_check_rate_limit_wraps_remote_errors(engine, fake_client, monkeypatch):
    engine.set_token("token")

    def unauthorized():
        raise GitHubAPIError("GitHub API error: 401 - Bad credentials", 401)

    monkeypatch.setattr(fake_client, "check_rate_limit", unauthorized)
    with pytest.raises(RemoteFetchFailed, match="Bad credentials"):
        engine.check_rate_limit()


def test_seed_token_from_env(engine, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "env-token")
    assert engine.seed_token_from_env() is True
    assert engine.get_token() == "env-token"

    monkeypatch.setenv("GITHUB_TOKEN", "other")
    assert engine.seed_token_from_env() is False
    assert engine.get_token() == "env-token"


# =============================================================================
# End-to-end: acme/widgets#42 through its lifecycle
# =============================================================================


def test_scenario_clean_pr_takes_no_action(engine, fake_client, notifier, bus, store):
    engine.set_token("token")
    fake_client.set_status(make_status(mergeable_state="clean"))

    prs = asyncio.run(engine.add_tracked_pr(PR_URL))
    assert prs[0].state == STATE_OPEN

    results = asyncio.run(engine.scheduler.run_once())

    assert [r.outcome.value for r in results] == ["up_to_date"]
    assert fake_client.update_calls == []
    assert notifier.messages == []
    assert bus.published == []
    assert store.get_pull_request("acme", "widgets", 42).state == STATE_OPEN


def test_scenario_behind_pr_updates_branch(engine, fake_client, notifier):
    engine.set_token("token")
    fake_client.set_status(make_status(mergeable_state="clean"))
    asyncio.run(engine.add_tracked_pr(PR_URL))

    fake_client.set_status(make_status(mergeable_state="behind"))
    asyncio.run(engine.scheduler.run_once())
    assert fake_client.update_calls == [("acme", "widgets", 42)]
    assert notifier.messages == []

    fake_client.update_error = GitHubAPIError("GitHub API error: 422 - Unprocessable", 422)
    asyncio.run(engine.scheduler.run_once())
    assert len(fake_client.update_calls) == 2
    assert len(notifier.messages) == 1
    assert notifier.messages[0][0] == "Failed to update PR"


def test_scenario_merged_pr_is_closed(engine, fake_client, bus):
    engine.set_token("token")
    fake_client.set_status(make_status(mergeable_state="clean"))
    asyncio.run(engine.add_tracked_pr(PR_URL))

    fake_client.set_status(make_status(merged=True, merged_at="2024-05-01T10:00:00Z", state="closed"))
    asyncio.run(engine.scheduler.run_once())

    assert bus.published == [{"type": "pr-closed", "number": 42}]
    prs = engine.list_tracked_prs()
    assert len(prs) == 1
    assert prs[0].state == STATE_CLOSED
