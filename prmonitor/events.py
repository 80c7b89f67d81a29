"""
In-process event bus for UI refresh events.

Publishing never blocks and never fails: with no subscribers the event is
dropped, and a full subscriber queue drops its oldest event.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any


PR_CLOSED = "pr-closed"
ERROR_EVENT = "error-event"
MONITOR_STATE = "monitor-state"


class EventBus:
    """Fan-out event bus with bounded per-subscriber queues."""

    def __init__(self, maxsize: int = 100):
        self.maxsize = maxsize
        self._queues: list[asyncio.Queue[dict[str, Any]]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def publish(self, event_type: str, **payload: Any) -> None:
        event = {"type": event_type, **payload}
        for queue in list(self._queues):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(event)

    def pr_closed(self, number: int) -> None:
        self.publish(PR_CLOSED, number=number)

    def error(self, message: str) -> None:
        self.publish(ERROR_EVENT, message=message)

    def monitor_state(self, running: bool) -> None:
        self.publish(MONITOR_STATE, running=running)

    async def subscribe(self) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.maxsize)
        self._queues.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._queues.remove(queue)
