"""SSEHub -- in-memory event fan-out to stream subscribers

Registered as an EventBus listener: every newly stored DomainEvent is pushed
to the queues subscribed to its user. A subscriber whose queue is full is
dropped.
"""

import asyncio
from collections import defaultdict

import structlog

from wisdomos.core.models import DomainEvent

log = structlog.get_logger()


class SSEHub:
    """Publish/subscribe over asyncio.Queue, keyed by user_id"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, user_id: str) -> asyncio.Queue:
        """Subscribe to the events of one user

        Returns:
            queue receiving every new DomainEvent of the user
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[user_id].add(queue)
        return queue

    async def unsubscribe(self, user_id: str, queue: asyncio.Queue) -> None:
        self._subscribers[user_id].discard(queue)
        if not self._subscribers[user_id]:
            del self._subscribers[user_id]

    async def broadcast(self, user_id: str, event: DomainEvent) -> None:
        dead_queues = []
        for queue in self._subscribers.get(user_id, set()):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        for q in dead_queues:
            self._subscribers[user_id].discard(q)
            log.warning("sse_subscriber_dropped", user_id=user_id)
        if user_id in self._subscribers and not self._subscribers[user_id]:
            del self._subscribers[user_id]

    async def on_event(self, event: DomainEvent) -> None:
        """EventBus listener"""
        if event.user_id is not None:
            await self.broadcast(event.user_id, event)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, set()))
