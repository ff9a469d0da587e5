"""In-process broadcaster feeding the dashboard's event stream.

Every connected stream client owns one asyncio queue. Publishing puts the
message on each queue without waiting; a client that stops draining its
queue loses messages rather than stalling the hook's POST.
"""

from __future__ import annotations

import asyncio
import logging
import time

from jrpg_visualizer.models import BattleEvent, BattleState, FeedMessage, FeedMessageType

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


def feed_message(type: FeedMessageType, data: BattleState | BattleEvent | None = None) -> FeedMessage:
    return FeedMessage(type=type, data=data, timestamp=int(time.time() * 1000))


class FeedBroadcaster:
    def __init__(self, queue_size: int = QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[FeedMessage]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[FeedMessage]:
        queue: asyncio.Queue[FeedMessage] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.debug("Feed subscriber added (%d total)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[FeedMessage]) -> None:
        self._subscribers.discard(queue)
        logger.debug("Feed subscriber removed (%d total)", len(self._subscribers))

    def publish(self, message: FeedMessage) -> int:
        """Queue the message for every subscriber. Returns how many received it."""
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Feed subscriber queue full; dropping %s", message.type)
        return delivered

    def publish_event(self, event: BattleEvent) -> int:
        return self.publish(feed_message("new_event", event))

    def publish_state(self, state: BattleState) -> int:
        return self.publish(feed_message("battle_update", state))
