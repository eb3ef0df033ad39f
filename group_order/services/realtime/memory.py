"""
In-Process Change Feed

Development implementation: one asyncio.Queue per subscriber inside the
running server. Only pages connected to this process are notified.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from group_order.services.realtime.base import BaseChangeFeed, ChangeEvent

logger = logging.getLogger(__name__)


class MemoryChangeFeed(BaseChangeFeed):
    """Fan-out to in-process queues."""

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._subscribers: set[asyncio.Queue] = set()
        self._running = False
        logger.info(f"MemoryChangeFeed initialized (max_queue={max_queue})")

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False
        for queue in list(self._subscribers):
            self._offer(queue, None)
        self._subscribers.clear()

    def _offer(self, queue: asyncio.Queue, event: Optional[ChangeEvent]) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            # Slow page: it will catch up on its next full reload
            logger.warning("Change feed subscriber queue full; event dropped")

    async def publish(self, event: ChangeEvent) -> None:
        logger.debug(f"Change: {event.table} {event.action} #{event.record_id}")
        for queue in list(self._subscribers):
            self._offer(queue, event)

    async def _iterate(self, queue: asyncio.Queue) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await queue.get()
            if event is None:
                return
            yield event

    @asynccontextmanager
    async def subscribe(self):
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        self._subscribers.add(queue)
        try:
            yield self._iterate(queue)
        finally:
            self._subscribers.discard(queue)

    async def health_check(self) -> bool:
        return self._running
