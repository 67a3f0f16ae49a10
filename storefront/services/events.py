"""In-process change feed for appointments and slot capacities."""

from __future__ import annotations

import asyncio
import logging
from threading import Lock
from typing import AsyncIterator, List, Optional

from storefront.schemas.events import ChangeEvent

logger = logging.getLogger(__name__)


class Subscription:
    """A subscriber's private queue of change events."""

    def __init__(self, feed: "ChangeFeed", maxsize: int) -> None:
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def _offer(self, event: ChangeEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Dropping change event %s for a slow subscriber", event.kind)

    async def get(self) -> ChangeEvent:
        return await self._queue.get()

    def get_nowait(self) -> Optional[ChangeEvent]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        self._feed.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.get()


class ChangeFeed:
    """Fan-out of change events to every current subscriber.

    ``publish`` never blocks the publishing flow. Subscribers must fold events
    idempotently: the feed gives no ordering guarantee across publishers.
    """

    def __init__(self, *, queue_size: int = 1000) -> None:
        self._queue_size = queue_size
        self._subscribers: List[Subscription] = []
        self._lock = Lock()

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self._queue_size)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> None:
        logger.debug("Publishing %s for %s", event.kind, event.entity_id)
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription._offer(event)


_change_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    global _change_feed
    if _change_feed is None:
        _change_feed = ChangeFeed()
    return _change_feed


def reset_change_feed() -> None:
    global _change_feed
    _change_feed = None
