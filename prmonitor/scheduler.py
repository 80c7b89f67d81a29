"""
Background monitor loop.

``SchedulerHandle`` owns the running flag (guarded by an ``asyncio.Lock``)
and the single loop task. Each cycle loads the open tracked PRs, fetches
their status from GitHub, classifies it and dispatches the resulting action,
then sleeps for the refresh interval.

Stopping is cooperative. The flag is checked before every record and before
the sleep, and ``stop()`` wakes the sleep early, so a stopped loop exits
after at most one in-flight GitHub call. Calls to ``start()`` are serialised,
and each waits for the previous loop to exit before spawning a new one, so
two loops never overlap.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .classifier import PrOutcome, classify
from .config import EngineSettings
from .dispatcher import ActionDispatcher, DispatchResult
from .errors import NoCredential
from .events import EventBus
from .github import GitHubAPIError, GitHubClient
from .notify import Notifier
from .store import Store, TrackedPullRequest


logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], GitHubClient]


class MonitorState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class LoopContext:
    """State owned by one loop instance."""
    generation: int
    interval_seconds: int
    client: GitHubClient
    dispatcher: ActionDispatcher
    active: bool = True
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)


class SchedulerHandle:
    def __init__(
        self,
        store: Store,
        client_factory: ClientFactory,
        notifier: Notifier,
        events: EventBus,
    ):
        self.store = store
        self.client_factory = client_factory
        self.notifier = notifier
        self.events = events
        self._lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._running = False
        self._current: LoopContext | None = None
        self._task: asyncio.Task[None] | None = None
        self.spawn_count = 0
        self.cycle_count = 0

    @property
    def state(self) -> MonitorState:
        return MonitorState.RUNNING if self._running else MonitorState.STOPPED

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        """
        Start the monitor loop if it is not already running.

        Returns:
            True if a new loop was spawned, False if one was already running
            or no token is stored.
        """
        async with self._start_lock:
            return await self._start()

    async def _start(self) -> bool:
        async with self._lock:
            if self._running:
                logger.info("Monitor is already running")
                return False
            previous = self._task

        if previous is not None and not previous.done():
            # A stopped loop may still be finishing its current GitHub call.
            await asyncio.wait({previous})

        token = await asyncio.to_thread(self.store.get_token)
        if not token:
            logger.info("Token not found; monitor not started")
            return False
        interval = await asyncio.to_thread(self.store.get_refresh_interval_seconds)

        async with self._lock:
            if self._running:
                return False
            self.spawn_count += 1
            client = self.client_factory(token)
            ctx = LoopContext(
                generation=self.spawn_count,
                interval_seconds=interval,
                client=client,
                dispatcher=self._build_dispatcher(client),
            )
            self._current = ctx
            self._running = True
            self._task = asyncio.create_task(
                self._run_loop(ctx), name=f"prmonitor-loop-{ctx.generation}"
            )

        logger.info("Starting monitor (interval=%ss)", interval)
        self.events.monitor_state(True)
        return True

    async def stop(self) -> None:
        """Ask the running loop to stop at its next checkpoint."""
        async with self._lock:
            ctx = self._current
            self._running = False
            self._current = None
            if ctx is not None:
                ctx.active = False
                ctx.stop_event.set()
        if ctx is not None:
            logger.info("Stopping monitor")
            self.events.monitor_state(False)

    async def join(self) -> None:
        """Wait until the most recently spawned loop has exited."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def restart(self) -> bool:
        """Stop the current loop, wait for it to exit, and start a new one."""
        await self.stop()
        await self.join()
        return await self.start()

    # =========================================================================
    # Loop
    # =========================================================================

    def _build_dispatcher(self, client: GitHubClient) -> ActionDispatcher:
        return ActionDispatcher(self.store, client, self.notifier, self.events)

    async def _checkpoint(self, ctx: LoopContext) -> bool:
        async with self._lock:
            return ctx.active

    async def _run_loop(self, ctx: LoopContext) -> None:
        logger.info("Monitor loop %d started", ctx.generation)
        try:
            while await self._checkpoint(ctx):
                try:
                    await self.run_cycle(ctx)
                except Exception:
                    logger.exception("Monitor cycle failed")
                    self.events.error("Monitor cycle failed; see log for details")

                if not await self._checkpoint(ctx):
                    break
                try:
                    await asyncio.wait_for(ctx.stop_event.wait(), timeout=ctx.interval_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self._current is ctx:
                self._running = False
                self._current = None
            logger.info("Monitor loop %d stopped", ctx.generation)

    async def run_cycle(self, ctx: LoopContext) -> list[DispatchResult]:
        """Process every open tracked PR once."""
        self.cycle_count += 1
        settings = await asyncio.to_thread(self.store.load_settings)
        records = await asyncio.to_thread(self.store.list_open_pull_requests)
        logger.info("Checking %d open PR(s)", len(records))

        results: list[DispatchResult] = []
        for record in records:
            if not await self._checkpoint(ctx):
                logger.info("Monitor stopped mid-cycle")
                break
            try:
                results.append(await self.process_record(ctx, record, settings))
            except Exception:
                logger.exception("Failed to process PR %s#%d", record.full_name, record.number)
        return results

    async def process_record(
        self,
        ctx: LoopContext,
        record: TrackedPullRequest,
        settings: EngineSettings,
    ) -> DispatchResult:
        status = None
        try:
            status = await asyncio.to_thread(
                ctx.client.get_pull, record.owner, record.repo, record.number
            )
            outcome = classify(status)
        except GitHubAPIError as exc:
            logger.error("Failed to fetch PR %s#%d: %s", record.full_name, record.number, exc)
            status, outcome = None, PrOutcome.UNKNOWN
        except Exception:
            logger.exception("Failed to read status of PR %s#%d", record.full_name, record.number)
            status, outcome = None, PrOutcome.UNKNOWN
        else:
            logger.debug(
                "PR %s#%d mergeable_state=%s -> %s",
                record.full_name,
                record.number,
                status.mergeable_state,
                outcome.value,
            )
        return await ctx.dispatcher.dispatch(record, outcome, settings, status)

    async def run_once(self) -> list[DispatchResult]:
        """Run a single cycle in the foreground, independent of the loop."""
        token = await asyncio.to_thread(self.store.get_token)
        if not token:
            raise NoCredential()
        client = self.client_factory(token)
        ctx = LoopContext(
            generation=0,
            interval_seconds=0,
            client=client,
            dispatcher=self._build_dispatcher(client),
        )
        return await self.run_cycle(ctx)
