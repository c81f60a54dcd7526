"""
Synchronous in-process event bus.

Handlers run immediately, in the publisher's thread and user context.
Handler errors are logged and never propagate: the write that produced
the event has already committed.
"""

import logging
from typing import Callable, Dict, List

from core.events import DomainEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    Subscribe by event class name, publish by event instance.

    Usage:
        bus = EventBus()
        bus.subscribe("BookingCancelled", handle_booking_cancelled(reminder_service))
        bus.publish(BookingCancelled.create(booking=booking))
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        self._subscribers.setdefault(event_type, []).append(callback)

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, []))

    def publish(self, event: DomainEvent) -> None:
        """Call every subscriber of the event's type, in subscription order."""
        event_type = type(event).__name__

        for callback in self._subscribers.get(event_type, []):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )
