"""
Unit tests for the event bus.

Tests subscription, delivery order and shutdown.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from party_inventory.events.event_bus import EventBus
from party_inventory.events.event_types import BaseEvent, InventoryMessage, ItemsChanged


class MockEventClass(BaseEvent):
    """Mock event class for testing."""


@pytest.fixture
def event_bus():
    """Create an EventBus instance."""
    return EventBus()


def test_event_bus_init(event_bus):
    assert event_bus.is_running is False
    assert event_bus._processing_task is None
    assert len(event_bus._subscribers) == 0


def test_event_type_is_class_name():
    event = InventoryMessage(group_id="g", message="Added Rope.")
    assert event.event_type == "InventoryMessage"
    assert event.level == "info"


def test_subscribe_and_unsubscribe(event_bus):
    handler = MagicMock()
    event_bus.subscribe(MockEventClass, handler)
    assert event_bus.get_subscriber_count(MockEventClass) == 1
    assert event_bus.unsubscribe(MockEventClass, handler) is True
    assert event_bus.unsubscribe(MockEventClass, handler) is False
    assert event_bus.get_subscriber_count(MockEventClass) == 0


def test_subscribe_rejects_non_event_type(event_bus):
    with pytest.raises(ValueError, match="BaseEvent"):
        event_bus.subscribe(dict, MagicMock())


def test_publish_rejects_non_event(event_bus):
    with pytest.raises(ValueError, match="BaseEvent"):
        event_bus.publish("not an event")


@pytest.mark.asyncio
async def test_events_delivered_in_publish_order(event_bus):
    received: list[tuple[str, int]] = []
    event_bus.subscribe(ItemsChanged, lambda e: received.append(("items", e.sequence_number)))
    event_bus.subscribe(InventoryMessage, lambda e: received.append((e.message, e.sequence_number)))

    event_bus.publish(ItemsChanged(group_id="g"))
    event_bus.publish(InventoryMessage(group_id="g", message="Added Rope."))
    event_bus.publish(ItemsChanged(group_id="g"))
    await event_bus.join()

    assert received == [("items", 1), ("Added Rope.", 2), ("items", 3)]
    await event_bus.shutdown()


@pytest.mark.asyncio
async def test_async_handler_is_awaited(event_bus):
    handler = AsyncMock()
    event_bus.subscribe(MockEventClass, handler)
    event = MockEventClass()
    event_bus.publish(event)
    await event_bus.join()
    handler.assert_awaited_once_with(event)
    await event_bus.shutdown()


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others(event_bus):
    failing = MagicMock(side_effect=RuntimeError("boom"))
    healthy = MagicMock()
    event_bus.subscribe(MockEventClass, failing)
    event_bus.subscribe(MockEventClass, healthy)

    event_bus.publish(MockEventClass())
    event_bus.publish(MockEventClass())
    await event_bus.join()

    assert healthy.call_count == 2
    await event_bus.shutdown()


@pytest.mark.asyncio
async def test_shutdown_drains_queue_then_drops_new_events(event_bus):
    handler = MagicMock()
    event_bus.subscribe(MockEventClass, handler)
    event_bus.publish(MockEventClass())
    event_bus.publish(MockEventClass())

    await event_bus.shutdown()
    assert handler.call_count == 2
    assert event_bus.is_running is False

    event_bus.publish(MockEventClass())
    assert handler.call_count == 2


@pytest.mark.asyncio
async def test_shutdown_without_events_is_noop(event_bus):
    await event_bus.shutdown()
    assert event_bus.is_running is False
