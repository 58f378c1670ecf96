"""
Change Feed: in-process publish/subscribe for record changes.

Writers publish a `ChangeEvent` after a successful write; readers subscribe
to a topic, a (table, key) pair such as ("battle_live_matches", "42"), and
await the next event. This is the push half of the polling + push hybrid
used by matchmaking and by clients following a live match.

Delivery is best effort and per process. A subscriber that falls behind
loses its oldest pending events; every consumer re-reads the record from
the database after waking up, so a dropped event only costs latency.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Topics
MATCH_TABLE = "battle_live_matches"
QUEUE_TABLE = "battle_matchmaking_queue"
EMOTE_TABLE = "battle_emotes"
PLAYER_TABLE = "players"

DEFAULT_MAX_PENDING = 100


@dataclass(frozen=True)
class ChangeEvent:
    """A change to one record."""

    table: str
    key: str
    event: str  # insert, update, delete
    record: dict[str, Any] = field(default_factory=dict)

    @property
    def topic(self) -> tuple[str, str]:
        return (self.table, self.key)


class Subscription:
    """
    A queue of events for one topic.

    Usage:
        with feed.subscribe(MATCH_TABLE, str(match_id)) as sub:
            event = await sub.get(timeout=3.0)
    """

    def __init__(self, feed: "ChangeFeed", topic: tuple[str, str], max_pending: int):
        self.topic = topic
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def deliver(self, event: ChangeEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            logger.warning("Change feed subscriber on %s dropped an event", self.topic)
        self._queue.put_nowait(event)

    async def get(self, timeout: float | None = None) -> ChangeEvent:
        """
        Wait for the next event.

        Raises:
            TimeoutError: no event arrived within `timeout` seconds
        """
        if timeout is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"No change on {self.topic} within {timeout}s") from e

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ChangeFeed:
    """Topic-keyed fan-out of change events to subscribers."""

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        self.max_pending = max_pending
        self._subscribers: dict[tuple[str, str], list[Subscription]] = defaultdict(list)

    def subscribe(self, table: str, key: str) -> Subscription:
        subscription = Subscription(self, (table, key), self.max_pending)
        self._subscribers[subscription.topic].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.topic)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._subscribers[subscription.topic]

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every subscriber of its topic. Returns the count."""
        subscribers = list(self._subscribers.get(event.topic, ()))
        for subscription in subscribers:
            subscription.deliver(event)
        logger.debug(
            "Published %s on %s to %d subscribers", event.event, event.topic, len(subscribers)
        )
        return len(subscribers)

    def subscriber_count(self, table: str, key: str) -> int:
        return len(self._subscribers.get((table, key), ()))


change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    """Dependency that provides the process-wide change feed."""
    return change_feed
