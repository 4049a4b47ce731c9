"""
Event bus for the party inventory core.

An in-memory pub/sub channel built on asyncio.Queue. A single processing task
delivers events in publish order; every subscriber of an event has been called
before the next event is delivered.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any, TypeVar

from ..logging.enhanced_logging_config import get_logger
from .event_types import BaseEvent

T = TypeVar("T", bound=BaseEvent)

logger = get_logger(__name__)


class EventBus:
    """
    Asyncio event bus.

    Processing starts on the first publish from within a running loop.
    Sync handlers are called in subscription order; async handlers of the same
    event run concurrently and are awaited before the next event.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type[BaseEvent], list[Callable[[BaseEvent], Any]]] = defaultdict(list)
        self._event_queue: asyncio.Queue[BaseEvent | None] = asyncio.Queue()
        self._running: bool = False
        self._closed: bool = False
        self._sequence: int = 0
        self._processing_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def _ensure_async_processing(self) -> None:
        """Start the processing task if it is not running yet."""
        if self._running:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            logger.warning(
                "EventBus will start processing on first publish when event loop available",
                error=str(e),
            )
            return
        self._running = True
        self._processing_task = asyncio.create_task(self._process_events_async(), name="party-inventory-events")
        logger.debug("EventBus processing started")

    async def _process_events_async(self) -> None:
        try:
            while True:
                event = await self._event_queue.get()
                try:
                    if event is None:
                        break
                    await self._handle_event_async(event)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    # A failing subscriber must not stop delivery of later events
                    logger.error("Error processing event", error=str(e), exc_info=True)
                finally:
                    self._event_queue.task_done()
        finally:
            self._running = False
            logger.debug("EventBus processing stopped")

    async def _handle_event_async(self, event: BaseEvent) -> None:
        event_type = type(event)
        subscribers = list(self._subscribers.get(event_type, []))
        if not subscribers:
            logger.debug("No subscribers for event type", event_type=event_type.__name__)
            return

        async_subscribers: list[Callable[[BaseEvent], Any]] = []
        for subscriber in subscribers:
            if inspect.iscoroutinefunction(subscriber):
                async_subscribers.append(subscriber)
                continue
            try:
                subscriber(event)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error(
                    "Error in sync event subscriber",
                    subscriber_name=getattr(subscriber, "__name__", "unknown"),
                    event_type=event_type.__name__,
                    error=str(e),
                )

        if not async_subscribers:
            return
        results = await asyncio.gather(*(s(event) for s in async_subscribers), return_exceptions=True)
        for subscriber, result in zip(async_subscribers, results, strict=True):
            if isinstance(result, Exception):
                logger.error(
                    "Error in async subscriber",
                    subscriber_name=getattr(subscriber, "__name__", "unknown"),
                    event_type=event_type.__name__,
                    error=str(result),
                    error_type=type(result).__name__,
                )

    def publish(self, event: BaseEvent) -> None:
        """
        Queue an event for delivery.

        Events published after shutdown() are dropped with a warning.
        """
        if not isinstance(event, BaseEvent):
            raise ValueError("Event must inherit from BaseEvent")
        if self._closed:
            logger.warning("Event published after shutdown - dropping event", event_type=type(event).__name__)
            return

        self._sequence += 1
        event.sequence_number = self._sequence
        self._ensure_async_processing()
        self._event_queue.put_nowait(event)
        logger.debug(
            "Published event to queue",
            event_type=type(event).__name__,
            sequence_number=event.sequence_number,
            queue_size=self._event_queue.qsize(),
        )

    def subscribe(self, event_type: type[T], handler: Callable[[T], Any]) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: The type of event to subscribe to
            handler: Sync or async callable invoked with the event
        """
        if not issubclass(event_type, BaseEvent):
            raise ValueError("Event type must inherit from BaseEvent")
        if not callable(handler):
            raise ValueError("Handler must be callable")
        self._subscribers[event_type].append(handler)  # type: ignore[arg-type]
        logger.debug("Added subscriber for event type", event_type=event_type.__name__)

    def unsubscribe(self, event_type: type[T], handler: Callable[[T], Any]) -> bool:
        """
        Unsubscribe a handler.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        if not issubclass(event_type, BaseEvent):
            raise ValueError("Event type must inherit from BaseEvent")
        subscribers = self._subscribers.get(event_type, [])
        try:
            subscribers.remove(handler)  # type: ignore[arg-type]
        except ValueError:
            logger.debug("Handler not found for event type", event_type=event_type.__name__)
            return False
        logger.debug("Removed subscriber for event type", event_type=event_type.__name__)
        return True

    def get_subscriber_count(self, event_type: type[BaseEvent]) -> int:
        return len(self._subscribers.get(event_type, []))

    async def join(self) -> None:
        """Wait until every event published so far has been delivered."""
        if self._running:
            await self._event_queue.join()

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Deliver queued events, then stop the processing task."""
        logger.info("Shutting down EventBus", pending_events=self._event_queue.qsize())
        self._closed = True
        task = self._processing_task
        if task is None or task.done():
            return
        self._event_queue.put_nowait(None)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except TimeoutError:
            logger.warning("EventBus did not drain before timeout; cancelling", timeout=timeout)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
