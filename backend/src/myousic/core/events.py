"""Fan-out of catalog and scan events to connected observers.

Each observer owns a bounded asyncio queue. ``broadcast`` never awaits: a
slow observer whose queue is full is dropped instead of stalling the scan.
New observers receive the current scan snapshot as their first event.
"""

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from loguru import logger

SCAN_START = "scan:start"
SCAN_PROGRESS = "scan:progress"
SCAN_STATUS = "scan:status"
SCAN_COMPLETE = "scan:complete"
SCAN_ERROR = "scan:error"
SONG_UPDATE = "song:update"
SONG_DELETE = "song:delete"


@dataclass
class CatalogEvent:
    type: str
    payload: Any
    timestamp: float = field(default_factory=time.time)

    def to_sse(self) -> str:
        """Encode as one Server-Sent Events data frame."""
        data = json.dumps({"type": self.type, "payload": self.payload, "timestamp": self.timestamp})
        return f"data: {data}\n\n"


class Subscription:
    """One connected observer."""

    def __init__(self, maxsize: int) -> None:
        self.id = str(uuid.uuid4())
        self.queue: "asyncio.Queue[Optional[CatalogEvent]]" = asyncio.Queue(maxsize=maxsize)


class EventBroadcaster:
    """Publishes events to every currently subscribed observer."""

    def __init__(
        self,
        snapshot_provider: Optional[Callable[[], Any]] = None,
        max_queue_size: int = 1000,
    ) -> None:
        self._subscribers: Dict[str, Subscription] = {}
        self._snapshot_provider = snapshot_provider
        self._max_queue_size = max_queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self._max_queue_size)
        if self._snapshot_provider is not None:
            sub.queue.put_nowait(CatalogEvent(SCAN_STATUS, self._snapshot_provider()))
        self._subscribers[sub.id] = sub
        logger.debug(f"Observer {sub.id} connected ({len(self._subscribers)} total)")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if self._subscribers.pop(sub.id, None) is not None:
            logger.debug(f"Observer {sub.id} disconnected ({len(self._subscribers)} total)")

    def broadcast(self, event_type: str, payload: Any) -> int:
        """Send an event to all observers.

        Returns:
            Number of observers the event was delivered to.
        """
        event = CatalogEvent(event_type, payload)
        delivered = 0
        for sub_id, sub in list(self._subscribers.items()):
            try:
                sub.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Observer {sub_id} is not keeping up; dropping it")
                self._subscribers.pop(sub_id, None)
        return delivered

    def close(self) -> None:
        """Signal every observer to finish its stream."""
        for sub in list(self._subscribers.values()):
            if sub.queue.full():
                # Make room for the sentinel; the observer is closing anyway
                sub.queue.get_nowait()
            sub.queue.put_nowait(None)
        self._subscribers.clear()
