"""
Fan-out of channel frames to connected websocket clients.

Each subscriber owns a bounded ``asyncio.Queue`` of encoded text frames.
Publishing never blocks: a subscriber whose queue is full misses that
frame, and the producer keeps its cadence regardless of slow clients.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List

from legalai_engine.core.constants import HUB_QUEUE_SIZE
from legalai_engine.core.events import ChannelEvent, encode_event

logger = logging.getLogger(__name__)


class EventHub:
    """Broadcast encoded frames to every subscriber queue."""

    def __init__(self, maxsize: int = HUB_QUEUE_SIZE) -> None:
        self._maxsize = maxsize
        self._subscribers: List[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.append(queue)
        logger.debug("[EventHub] Subscriber added (%d total)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug("[EventHub] Subscriber removed (%d left)", len(self._subscribers))

    def publish(self, event: ChannelEvent) -> None:
        self._broadcast(encode_event(event))

    def _broadcast(self, frame: str) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(frame)
            except asyncio.QueueFull:
                logger.debug("[EventHub] Subscriber queue full, dropping frame")
