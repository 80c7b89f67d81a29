"""
FastAPI transport layer for the PR monitor.

Mirrors the commands a desktop shell issues (add/list/delete PRs, start/stop
the monitor, settings, token) and streams engine events over SSE.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from ..config import PRMonitorConfig
from ..engine import MonitorEngine
from ..errors import (
    DuplicateRecord,
    InvalidUrl,
    NoCredential,
    PRMonitorError,
    RemoteFetchFailed,
)
from ..store import Store, TrackedPullRequest


ERROR_STATUS: dict[type[PRMonitorError], int] = {
    InvalidUrl: 400,
    NoCredential: 400,
    DuplicateRecord: 409,
    RemoteFetchFailed: 502,
}


class AddPullRequest(BaseModel):
    url: str = Field(min_length=1)


class RefreshTimeRequest(BaseModel):
    minutes: int = Field(gt=0)


class NotificationsRequest(BaseModel):
    enabled: bool


class ThemeRequest(BaseModel):
    theme: str = Field(min_length=1)


class TokenRequest(BaseModel):
    token: str = Field(min_length=1)


def _pr_to_dict(pr: TrackedPullRequest) -> dict[str, Any]:
    return asdict(pr)


def _http_error(exc: PRMonitorError) -> HTTPException:
    status_code = ERROR_STATUS.get(type(exc), 500)
    return HTTPException(status_code=status_code, detail={"kind": exc.kind, "message": exc.message})


def create_app(engine: MonitorEngine | None = None, autostart: bool = True) -> FastAPI:
    if engine is None:
        config = PRMonitorConfig.load()
        engine = MonitorEngine(store=Store(), config=config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        engine.seed_token_from_env()
        if autostart:
            await engine.start_monitor()
        try:
            yield
        finally:
            await engine.stop_monitor()
            await engine.scheduler.join()

    app = FastAPI(title="prmonitor", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:1420", "http://127.0.0.1:1420", "tauri://localhost"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Pull requests
    # =========================================================================

    @app.get("/api/prs")
    async def list_prs() -> list[dict[str, Any]]:
        try:
            return [_pr_to_dict(pr) for pr in engine.list_tracked_prs()]
        except PRMonitorError as exc:
            raise _http_error(exc) from exc

    @app.post("/api/prs")
    async def add_pr(payload: AddPullRequest) -> list[dict[str, Any]]:
        try:
            prs = await engine.add_tracked_pr(payload.url)
        except PRMonitorError as exc:
            logger.warning("Add PR failed: {}", exc)
            raise _http_error(exc) from exc
        return [_pr_to_dict(pr) for pr in prs]

    @app.delete("/api/prs/{number}")
    async def delete_pr(
        number: int,
        owner: Optional[str] = Query(default=None),
        repo: Optional[str] = Query(default=None),
    ) -> dict[str, Any]:
        try:
            deleted = engine.delete_pr(number, owner=owner, repo=repo)
        except PRMonitorError as exc:
            raise _http_error(exc) from exc
        if deleted == 0:
            raise HTTPException(status_code=404, detail="pull request not tracked")
        return {"deleted": deleted}

    # =========================================================================
    # Monitor
    # =========================================================================

    @app.get("/api/monitor")
    async def monitor_status() -> dict[str, Any]:
        return {"state": engine.monitor_state().value}

    @app.post("/api/monitor/start")
    async def start_monitor() -> dict[str, Any]:
        started = await engine.start_monitor()
        return {"started": started, "state": engine.monitor_state().value}

    @app.post("/api/monitor/stop")
    async def stop_monitor() -> dict[str, Any]:
        await engine.stop_monitor()
        return {"state": engine.monitor_state().value}

    # =========================================================================
    # Settings
    # =========================================================================

    @app.get("/api/settings")
    async def get_settings() -> dict[str, Any]:
        try:
            return {
                "refresh_time": engine.get_refresh_interval(),
                "show_notification": engine.get_notifications_enabled(),
                "theme": engine.get_theme(),
            }
        except PRMonitorError as exc:
            raise _http_error(exc) from exc

    @app.put("/api/settings/refresh-time")
    async def set_refresh_time(payload: RefreshTimeRequest) -> dict[str, Any]:
        try:
            await engine.set_refresh_interval(payload.minutes)
        except PRMonitorError as exc:
            raise _http_error(exc) from exc
        return {"refresh_time": payload.minutes}

    @app.put("/api/settings/notifications")
    async def set_notifications(payload: NotificationsRequest) -> dict[str, Any]:
        try:
            engine.set_notifications_enabled(payload.enabled)
        except PRMonitorError as exc:
            raise _http_error(exc) from exc
        return {"show_notification": payload.enabled}

    @app.put("/api/settings/theme")
    async def set_theme(payload: ThemeRequest) -> dict[str, Any]:
        try:
            engine.set_theme(payload.theme)
        except PRMonitorError as exc:
            raise _http_error(exc) from exc
        return {"theme": payload.theme}

    # =========================================================================
    # Token
    # =========================================================================

    @app.get("/api/token")
    async def has_token() -> dict[str, Any]:
        try:
            return {"has_token": engine.has_token()}
        except PRMonitorError as exc:
            raise _http_error(exc) from exc

    @app.put("/api/token")
    async def set_token(payload: TokenRequest) -> dict[str, Any]:
        try:
            engine.set_token(payload.token)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except PRMonitorError as exc:
            raise _http_error(exc) from exc
        return {"has_token": True}

    # =========================================================================
    # Events
    # =========================================================================

    @app.get("/api/events")
    async def stream_events() -> EventSourceResponse:
        async def event_generator() -> Any:
            async for event in engine.events.subscribe():
                etype = str(event.get("type", "message"))
                payload = {k: v for k, v in event.items() if k != "type"}
                yield {
                    "event": etype,
                    "data": json.dumps(payload),
                }

        return EventSourceResponse(event_generator())

    return app
