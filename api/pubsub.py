"""
In-process publish/subscribe used for GraphQL subscriptions.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, Set

import structlog

logger = structlog.get_logger(__name__)

BOOK_ADDED = "BOOK_ADDED"


class TopicSubscription:
    """
    Async iterator over the payloads published to one topic.

    The subscriber is registered as soon as the object is created, so
    nothing published afterwards is missed even before iteration starts.
    Closing it (``aclose``, leaving ``async with`` or cancelling the task
    waiting on it) removes the registration.
    """

    def __init__(self, pubsub: "PubSub", topic: str):
        self.topic = topic
        self._pubsub = pubsub
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        pubsub._attach(topic, self._queue)

    def __aiter__(self) -> "TopicSubscription":
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._queue.get()
        except asyncio.CancelledError:
            await self.aclose()
            raise

    async def __aenter__(self) -> "TopicSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            self._pubsub._detach(self.topic, self._queue)


class PubSub:
    """Topic-keyed fan-out to every live subscriber."""

    def __init__(self):
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, topic: str) -> TopicSubscription:
        """Register a new subscriber for ``topic``."""
        return TopicSubscription(self, topic)

    async def publish(self, topic: str, payload: Any) -> int:
        """
        Deliver ``payload`` to every current subscriber of ``topic``.

        Returns:
            Number of subscribers the payload was queued for
        """
        queues = list(self._subscribers.get(topic, ()))
        for queue in queues:
            queue.put_nowait(payload)
        logger.debug("Published event", topic=topic, subscribers=len(queues))
        return len(queues)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def _attach(self, topic: str, queue: asyncio.Queue) -> None:
        self._subscribers[topic].add(queue)
        logger.debug("Subscriber registered", topic=topic, subscribers=self.subscriber_count(topic))

    def _detach(self, topic: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(topic)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[topic]
        logger.debug("Subscriber removed", topic=topic, subscribers=self.subscriber_count(topic))
