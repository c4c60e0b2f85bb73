"""
In-process message channels between the orchestrator and its agent.

The two sides run as independent asyncio tasks and never call each other;
they only exchange dicts through these channels.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional


_CLOSED = object()


class EventChannel:
    """
    Agent -> orchestrator structured messages.

    Like window.postMessage, a message published while nobody is subscribed
    is simply lost; `publish` reports whether anyone received it.
    """

    def __init__(self) -> None:
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, message: dict) -> bool:
        for queue in self._subscribers:
            queue.put_nowait(message)
        return bool(self._subscribers)

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)


class ControlChannel:
    """Orchestrator -> agent commands."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def send(self, command: dict) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(command)
        return True

    async def receive(self) -> Optional[dict]:
        """Next command, or None once the channel is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed
