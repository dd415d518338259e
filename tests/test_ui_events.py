import asyncio
import json
import logging
from collections.abc import AsyncIterator

import pytest

from vibecheck.core.ui_events import PROVIDER_CHANGED, Event, EventBus, make_event


@pytest.mark.asyncio
async def test_in_memory_bus_publish_and_receive() -> None:
    bus = EventBus()
    ev = make_event(PROVIDER_CHANGED, {"oldProvider": "cloud", "newProvider": "on_device"})

    subscriber: AsyncIterator[Event] = bus.subscribe()
    await bus.publish(ev)

    received = await asyncio.wait_for(subscriber.__anext__(), timeout=1)
    await subscriber.aclose()

    assert received == ev


@pytest.mark.asyncio
async def test_in_memory_bus_broadcasts_to_all_subscribers() -> None:
    bus = EventBus()
    ev = make_event(PROVIDER_CHANGED, {"newProvider": "cloud"})

    first = bus.subscribe()
    second = bus.subscribe()
    assert bus.subscriber_count == 2

    await bus.publish(ev)

    first_result = await asyncio.wait_for(first.__anext__(), timeout=1)
    second_result = await asyncio.wait_for(second.__anext__(), timeout=1)

    await first.aclose()
    await second.aclose()

    assert first_result == ev
    assert second_result == ev


@pytest.mark.asyncio
async def test_full_subscriber_queue_drops_instead_of_blocking(caplog) -> None:
    bus = EventBus(max_queue_size=1)
    stalled = bus.subscribe()
    reader = bus.subscribe()

    first = make_event("demo.first", {})
    second = make_event("demo.second", {})

    await bus.publish(first)
    assert await asyncio.wait_for(reader.__anext__(), timeout=1) == first

    with caplog.at_level(logging.WARNING, logger="vibecheck.core.ui_events"):
        await asyncio.wait_for(bus.publish(second), timeout=1)

    assert await asyncio.wait_for(reader.__anext__(), timeout=1) == second
    assert await asyncio.wait_for(stalled.__anext__(), timeout=1) == first
    dropped = [r for r in caplog.records if r.getMessage() == "event_bus.dropped"]
    assert len(dropped) == 1
    assert dropped[0].dropped == 1

    await stalled.aclose()
    await reader.aclose()


@pytest.mark.asyncio
async def test_closed_subscriber_is_removed() -> None:
    bus = EventBus()
    subscriber = bus.subscribe()
    await bus.publish(make_event("demo.first", {}))
    await subscriber.__anext__()

    await subscriber.aclose()

    assert bus.subscriber_count == 0
    await bus.publish(make_event("demo.after_close", {}))
    with pytest.raises(StopAsyncIteration):
        await subscriber.__anext__()


@pytest.mark.asyncio
async def test_unread_subscription_unregisters_on_close() -> None:
    bus = EventBus()
    subscriber = bus.subscribe()
    assert bus.subscriber_count == 1

    subscriber.close()

    assert subscriber.closed
    assert bus.subscriber_count == 0


def test_make_event_populates_fields() -> None:
    ev = make_event("system.notice", {"message": "ready"})

    assert ev.type == "system.notice"
    assert ev.data == {"message": "ready"}
    uuid_parts = ev.id.split("-")
    assert len(uuid_parts) == 5
    assert ev.ts > 0


def test_event_to_json_is_compact() -> None:
    ev = make_event(PROVIDER_CHANGED, {"newProvider": "cloud"})

    encoded = ev.to_json()

    assert " " not in encoded
    assert json.loads(encoded) == {
        "id": ev.id,
        "type": PROVIDER_CHANGED,
        "ts": ev.ts,
        "data": {"newProvider": "cloud"},
    }
