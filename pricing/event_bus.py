"""
In-memory event bus for offer and price change notifications.

The lifecycle controller publishes an event after each operation commits.
Downstream consumers (search indexing, cache invalidation) subscribe here
instead of being called by the controller. In a real system, this would be
replaced by a message broker.

Design decisions:
- Synchronous delivery, in registration order
- Type-based subscriptions, plus "*" for every event
- A failing handler is logged and never reaches the publisher
- Published events are kept in a log for debugging and tests
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

logger = logging.getLogger("event_bus")


@dataclass
class Event:
    """
    A record of something that happened to an offer or a product.

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: String name of the event type (used for routing)
        timestamp: When the event occurred
        source: Which component published the event
        payload: The event-specific data
    """
    event_type: str
    payload: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"Event({self.event_type}, id={self.event_id[:8]}, source={self.source})"


# Type alias for event handler functions
EventHandler = Callable[[Event], None]


class EventBus:
    """
    Simple in-memory pub/sub.

    Example usage:
        bus = EventBus()

        def reindex(event):
            search_index.refresh(event.payload["product_id"])
        bus.subscribe("ProductPriceChanged", reindex)
    """

    def __init__(self):
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._event_log: list[Event] = []
        self._log_events: bool = True
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to one event type ("*" for all)."""
        with self._lock:
            self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed handler to '{event_type}' events")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to ALL events (useful for logging, debugging, or audit)."""
        self.subscribe("*", handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns True if the handler was found and removed, False otherwise.
        """
        with self._lock:
            try:
                self._subscribers[event_type].remove(handler)
            except ValueError:
                return False
        logger.debug(f"Unsubscribed handler from '{event_type}' events")
        return True

    def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribers.

        Returns the number of handlers that received the event. A handler
        that raises is logged and does not stop the others.
        """
        with self._lock:
            if self._log_events:
                self._event_log.append(event)
            handlers = list(self._subscribers.get(event.event_type, []))
            handlers += self._subscribers.get("*", [])

        logger.debug(f"Publishing: {event}")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler raised exception for {event}: {e}")

        return len(handlers)

    def get_event_log(self, event_type: Optional[str] = None) -> list[Event]:
        """Get published events, optionally only one type."""
        with self._lock:
            events = list(self._event_log)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events

    def clear_event_log(self) -> None:
        with self._lock:
            self._event_log.clear()

    def set_logging(self, enabled: bool) -> None:
        """Enable or disable keeping the event log."""
        self._log_events = enabled


# Module-level singleton for convenience
_default_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the default event bus singleton."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> EventBus:
    """Reset the default event bus (useful for testing)."""
    global _default_bus
    _default_bus = EventBus()
    return _default_bus
