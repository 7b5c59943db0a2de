"""
Event bus for queue and capacity notifications in CareRoute.
Async pub/sub so supervisor alerting stays decoupled from the core services.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Any, Optional, Tuple
import uuid

from careroute.models.events import EventType, CareEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[CareEvent], Any]


class EventBus:
    """
    Async event bus.

    Supports:
    - Publishing events to all subscribers
    - Subscribing to specific event types
    - Event history for debugging
    - Priority-ordered handler invocation
    """

    def __init__(self, max_history: int = 1000):
        """Initialize the event bus."""
        self._subscribers: Dict[EventType, List[Tuple[int, Subscriber]]] = {
            event_type: [] for event_type in EventType
        }
        self._event_history: List[CareEvent] = []
        self._max_history = max_history
        self._lock = asyncio.Lock()
        self._is_running = True

        logger.info("EventBus initialized")

    async def publish(self, event: CareEvent) -> None:
        """
        Publish an event to all subscribers.

        Subscriber failures are logged and never propagate to the publisher.
        """
        if not self._is_running:
            logger.warning("EventBus is stopped, ignoring event")
            return

        async with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history.pop(0)

        logger.debug(f"Publishing event: {event.event_type.value} from {event.source.value}")

        subscribers = sorted(
            self._subscribers.get(event.event_type, []),
            key=lambda entry: entry[0],
            reverse=True
        )

        for _, callback in subscribers:
            await self._safe_call(callback, event)

    async def _safe_call(self, callback: Subscriber, event: CareEvent) -> None:
        """Call a sync or async callback, catching exceptions."""
        try:
            result = callback(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Error in event callback: {e}", exc_info=True)

    def subscribe(
        self,
        event_type: EventType,
        callback: Subscriber,
        priority: int = 5
    ) -> None:
        """
        Subscribe to a specific event type.

        Args:
            event_type: Type of event to subscribe to
            callback: Function (sync or async) to call when event occurs
            priority: Handler priority (1-10, 10 = called first)
        """
        entries = self._subscribers.setdefault(event_type, [])
        if all(existing is not callback for _, existing in entries):
            entries.append((priority, callback))
            logger.debug(f"Subscribed to {event_type.value} with priority {priority}")

    def unsubscribe(self, event_type: EventType, callback: Subscriber) -> None:
        """Unsubscribe a callback from an event type."""
        entries = self._subscribers.get(event_type, [])
        self._subscribers[event_type] = [
            entry for entry in entries if entry[1] is not callback
        ]

    def get_history(
        self,
        event_type: Optional[EventType] = None,
        limit: int = 100
    ) -> List[CareEvent]:
        """Event history, most recent first, optionally filtered by type."""
        history = self._event_history.copy()

        if event_type:
            history = [e for e in history if e.event_type == event_type]

        history.reverse()
        return history[:limit]

    def clear_history(self) -> None:
        """Clear event history."""
        self._event_history.clear()
        logger.info("Event history cleared")

    def stop(self) -> None:
        """Stop the event bus from processing events."""
        self._is_running = False
        logger.info("EventBus stopped")

    def start(self) -> None:
        """Start/resume the event bus."""
        self._is_running = True
        logger.info("EventBus started")


# Singleton instance
_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the singleton event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def create_event_id() -> str:
    """Generate a unique event ID."""
    return f"evt_{uuid.uuid4().hex[:12]}"
