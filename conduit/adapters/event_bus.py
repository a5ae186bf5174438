"""Async event bus carrying one worker task's events to its subscribers.

The task's reader loop is the only producer. Each subscriber gets its
own queue, so every subscriber sees events in emission order. Events
emitted before anyone subscribes are held in a backlog that the first
subscriber drains.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator

from conduit.adapters.events import AgentEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Fan-out async queue from a worker task to event consumers."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._maxsize = maxsize
        self._subscribers: list[asyncio.Queue[AgentEvent]] = []
        self._backlog: deque[AgentEvent] = deque(maxlen=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def emit(self, event: AgentEvent) -> None:
        """Deliver an event to every subscriber, in order."""
        if self._closed:
            return
        if not self._subscribers:
            if len(self._backlog) == self._backlog.maxlen:
                logger.warning(
                    "EventBus backlog full, dropping oldest event (%s)",
                    self._backlog[0].event_type,
                )
            self._backlog.append(event)
            return
        for queue in list(self._subscribers):
            try:
                # Backpressure instead of dropping; a stuck consumer only
                # delays this bus, never other conversations.
                await asyncio.wait_for(queue.put(event), timeout=30.0)
            except asyncio.TimeoutError:
                logger.error(
                    "EventBus subscriber blocked for 30s, dropping: %s (queue size: %d)",
                    event.event_type,
                    queue.qsize(),
                )

    def subscribe(self) -> AsyncIterator[AgentEvent]:
        """Register a subscriber and return its event iterator.

        The iterator ends once the bus is closed and the subscriber's
        queue is drained.
        """
        queue: asyncio.Queue[AgentEvent] = asyncio.Queue(maxsize=self._maxsize)
        while self._backlog:
            queue.put_nowait(self._backlog.popleft())
        self._subscribers.append(queue)
        return self._consume(queue)

    async def _consume(
        self, queue: asyncio.Queue[AgentEvent]
    ) -> AsyncIterator[AgentEvent]:
        try:
            while True:
                if self._closed and queue.empty():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue
                yield event
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def close(self) -> None:
        """Stop accepting events. Subscribers finish after draining."""
        self._closed = True
