"""Process-local event channel for live observers.

Events are a best-effort mirror of committed state changes. Nothing in the
coordination layer reads them back; the database stays the only source of
truth, so a dropped event never affects correctness.
"""

import asyncio
from typing import Dict, Iterable, Optional, Set

from coordinator.core.config import settings
from coordinator.schemas.events import CoordinationEvent, EventKind
from coordinator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class EventChannel:
    """Fan-out of coordination events to bounded per-subscriber queues."""

    def __init__(self, max_queue_size: Optional[int] = None):
        self.max_queue_size = max_queue_size or settings.event_queue_size
        self._subscribers: Dict[asyncio.Queue, Optional[Set[EventKind]]] = {}

    def subscribe(
        self, kinds: Optional[Iterable[EventKind]] = None
    ) -> "asyncio.Queue[CoordinationEvent]":
        """Register a new observer.

        Args:
            kinds: Event kinds to receive; all kinds when omitted

        Returns:
            Queue the observer reads events from
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers[queue] = set(kinds) if kinds else None
        LOGGER.debug(f"Subscriber registered ({len(self._subscribers)} active)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.pop(queue, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: CoordinationEvent) -> int:
        """Deliver an event to every interested subscriber without blocking.

        A subscriber whose queue is full misses the event.

        Returns:
            Number of subscribers that received the event
        """
        delivered = 0
        for queue, kinds in list(self._subscribers.items()):
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                LOGGER.warning(
                    f"Dropping {event.kind.value} event: subscriber queue full "
                    f"({self.max_queue_size})"
                )
        return delivered


event_channel = EventChannel()
