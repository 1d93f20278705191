# MIT License
# Copyright (c) 2025 Hashborn

"""
Event bus for reward pool notifications.

Events are published after an operation has committed and are delivered
synchronously, in subscription order, on the calling thread. A failing
subscriber is logged and skipped; it cannot undo the operation.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging

from protocol.types.common import EventType

logger = logging.getLogger(__name__)


@dataclass
class PoolEvent:
    """
    Attributes:
        event_type: What happened
        pool_id: Pool that emitted the event
        timestamp: Engine clock reading at the operation
        data: Event payload (account, amount, new_balance, ...)
    """
    event_type: EventType
    pool_id: str
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)


EventCallback = Callable[[PoolEvent], None]


class EventBus:
    def __init__(self):
        self.listeners: Dict[EventType, List[EventCallback]] = {}
        # Subscribers to every event type
        self.catch_all: List[EventCallback] = []

    def subscribe(self, event_type: Optional[EventType], callback: EventCallback) -> None:
        """
        Subscribe to an event type, or to all events with event_type=None.
        """
        if event_type is None:
            self.catch_all.append(callback)
        else:
            self.listeners.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to event: {event_type.value if event_type else '*'}")

    def unsubscribe(self, event_type: Optional[EventType], callback: EventCallback) -> None:
        listeners = self.catch_all if event_type is None else self.listeners.get(event_type, [])
        try:
            listeners.remove(callback)
        except ValueError:
            logger.warning(f"Callback not found for event: {event_type.value if event_type else '*'}")

    def emit(self, event: PoolEvent) -> None:
        listeners = self.listeners.get(event.event_type, []) + self.catch_all

        if not listeners:
            logger.debug(f"No listeners for event: {event.event_type.value}")
            return

        logger.debug(f"Emitting event: {event.event_type.value} to {len(listeners)} listener(s)")

        for callback in listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in event callback for {event.event_type.value}: {e}", exc_info=True)

    def clear(self, event_type: Optional[EventType] = None) -> None:
        if event_type:
            self.listeners.pop(event_type, None)
        else:
            self.listeners.clear()
            self.catch_all.clear()
