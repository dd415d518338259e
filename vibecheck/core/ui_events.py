"""Event model and bus for pushing provider changes to UI clients."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any

log = logging.getLogger(__name__)

PROVIDER_CHANGED = "AI_PROVIDER_CHANGED"


@dataclass(frozen=True, slots=True)
class Event:
    """Typed envelope pushed to the UI."""

    id: str
    type: str
    ts: float
    data: dict[str, Any]

    def to_json(self) -> str:
        """Serialise the event payload into a compact JSON string."""

        return json.dumps(asdict(self), separators=(",", ":"), ensure_ascii=False)


class EventBus:
    """Broadcast events to per-subscriber queues backed by asyncio."""

    def __init__(self, *, max_queue_size: int = 1000) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: set[asyncio.Queue[Event]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, ev: Event) -> None:
        """Deliver ``ev`` to every subscriber.

        A subscriber whose queue is full misses the event; publishing never
        waits on a slow reader.
        """

        dropped = 0
        for queue in tuple(self._subscribers):
            try:
                queue.put_nowait(ev)
            except asyncio.QueueFull:
                dropped += 1
        if dropped:
            log.warning(
                "event_bus.dropped",
                extra={"type": ev.type, "dropped": dropped},
            )
        log.debug(
            "event_bus.published",
            extra={"type": ev.type, "subscribers": len(self._subscribers)},
        )

    def subscribe(self) -> "Subscription":
        """Return an async iterator yielding events published from now on."""

        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.add(queue)
        return Subscription(self._subscribers, queue)


class Subscription:
    """One subscriber's view of the bus; ``aclose`` unregisters it."""

    def __init__(
        self, registry: set[asyncio.Queue[Event]], queue: asyncio.Queue[Event]
    ) -> None:
        self._registry = registry
        self._queue = queue
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True
        self._registry.discard(self._queue)

    async def aclose(self) -> None:
        self.close()


def make_event(ev_type: str, data: dict[str, Any]) -> Event:
    """Create a standardised event payload."""

    return Event(id=str(uuid.uuid4()), type=ev_type, ts=time.time(), data=data)
