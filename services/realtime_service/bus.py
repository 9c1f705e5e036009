"""
In-process topic pub/sub used to push live updates to connected clients.

Delivery is at-most-once to whoever is subscribed at publish time. Each
subscriber owns a bounded queue; publish only ever does put_nowait, so a
slow or dead connection loses events instead of stalling an order. Events
from one publisher reach a given subscriber in publish order (FIFO queue).
"""
import asyncio
import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count

import structlog

from shared.observability import ecomm_active_subscribers, ecomm_events_published_total

logger = structlog.get_logger(__name__)

ADMIN_TOPIC = "admin:*"
EVENT_QUEUE_SIZE = int(os.getenv("EVENT_QUEUE_SIZE", "100"))

_subscriber_ids = count(1)


def product_topic(product_id) -> str:
    return f"product:{product_id}"


def user_topic(user_id) -> str:
    return f"user:{user_id}"


def topic_family(topic: str) -> str:
    return topic.split(":", 1)[0]


@dataclass(frozen=True)
class Event:
    topic: str
    type: str
    payload: dict
    published_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_message(self) -> dict:
        return {"topic": self.topic, "type": self.type, "data": self.payload, "publishedAt": self.published_at}


class Subscriber:
    """One live connection's mailbox."""

    def __init__(self, maxsize: int = EVENT_QUEUE_SIZE, name: str | None = None):
        self.id = next(_subscriber_ids)
        self.name = name or f"subscriber-{self.id}"
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: Event) -> bool:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> Event:
        return await self.queue.get()

    def drain(self) -> list[Event]:
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events

    def __repr__(self):
        return f"<Subscriber {self.name}>"


class EventBus:

    def __init__(self):
        self._topics: dict[str, set[Subscriber]] = defaultdict(set)

    def subscribe(self, topic: str, subscriber: Subscriber):
        if not self._is_known(subscriber):
            ecomm_active_subscribers.inc()
        self._topics[topic].add(subscriber)
        logger.debug("topic_subscribed", topic=topic, subscriber=subscriber.name)

    def unsubscribe(self, topic: str, subscriber: Subscriber):
        members = self._topics.get(topic)
        if not members or subscriber not in members:
            return
        members.discard(subscriber)
        if not members:
            del self._topics[topic]
        if not self._is_known(subscriber):
            ecomm_active_subscribers.dec()
        logger.debug("topic_unsubscribed", topic=topic, subscriber=subscriber.name)

    def unsubscribe_all(self, subscriber: Subscriber):
        for topic in list(self.topics_for(subscriber)):
            self.unsubscribe(topic, subscriber)

    def topics_for(self, subscriber: Subscriber) -> set[str]:
        return {topic for topic, members in self._topics.items() if subscriber in members}

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def publish(self, topic: str, event_type: str, payload: dict) -> int:
        """Fan an event out to current subscribers. Returns how many accepted it."""
        event = Event(topic=topic, type=event_type, payload=payload)
        delivered = 0
        for subscriber in list(self._topics.get(topic, ())):
            if subscriber.offer(event):
                delivered += 1
            else:
                logger.warning("event_dropped", topic=topic, type=event_type, subscriber=subscriber.name)
        ecomm_events_published_total.labels(family=topic_family(topic)).inc()
        return delivered

    def _is_known(self, subscriber: Subscriber) -> bool:
        return any(subscriber in members for members in self._topics.values())
