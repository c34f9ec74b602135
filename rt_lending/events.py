"""
Event System Module

Change events published after every local mutation, and the dispatcher
that fans them out to subscribers (the sync outbox, tests, …).
"""

from enum import Enum
from typing import Any, Callable, Dict, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock


class ChangeAction(Enum):
    """Mutations mirrored to the spreadsheet service"""
    CREATE_LOAN = "CREATE_LOAN"
    UPDATE_LOAN = "UPDATE_LOAN"
    DELETE_LOAN = "DELETE_LOAN"
    CREATE_TRANSACTION = "CREATE_TRANSACTION"
    UPDATE_TRANSACTION = "UPDATE_TRANSACTION"
    DELETE_TRANSACTION = "DELETE_TRANSACTION"


@dataclass
class ChangeEvent:
    """A local mutation: full or partial record, or a bare id for deletes"""
    action: ChangeAction
    entity_id: str
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'action': self.action.value,
            'entity_id': self.entity_id,
            'payload': self.payload,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


Handler = Callable[[ChangeEvent], None]


def _handler_name(handler: Callable) -> str:
    return getattr(handler, '__name__', repr(handler))


class EventDispatcher:
    """Central event dispatcher, publish/subscribe"""

    def __init__(self):
        self._handlers: List[Handler] = []
        self._lock = RLock()
        self.logger = logging.getLogger("rt_lending.events")

    def subscribe_all(self, handler: Handler) -> None:
        """Subscribe to ALL actions"""
        with self._lock:
            self._handlers.append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)}")

    def unsubscribe_all(self, handler: Handler) -> None:
        """Remove a handler"""
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed")

    def publish(self, event: ChangeEvent) -> None:
        """Publish event to all subscribers.

        A failing handler is logged and skipped; it never undoes the
        mutation that produced the event.
        """
        with self._lock:
            handlers = list(self._handlers)

        self.logger.debug(f"Publishing {event.action.value} for {event.entity_id}")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Error in event handler {_handler_name(handler)} for {event.action.value}: {e}")
