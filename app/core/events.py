# File: app/core/events.py

from typing import Dict, Any, Callable, List, Optional, Type, Union
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from decimal import Decimal
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

EventHandler = Callable[["DomainEvent"], None]


# --- Base DomainEvent ---
@dataclass(eq=False)
class DomainEvent:
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["event_type"] = self.__class__.__name__
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result


# --- Payment Rule Event Definitions ---
@dataclass(eq=False)
class PaymentRuleCreated(DomainEvent):
    rule_id: int = 0
    property_id: int = 0
    rule_type: str = ""
    user_id: Optional[int] = None


@dataclass(eq=False)
class PaymentRuleUpdated(DomainEvent):
    rule_id: int = 0
    changes: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[int] = None


@dataclass(eq=False)
class PaymentRuleAssignmentChanged(DomainEvent):
    rule_id: int = 0
    room_ids: List[int] = field(default_factory=list)
    assigned: bool = True
    user_id: Optional[int] = None


# --- Refund Event Definitions ---
@dataclass(eq=False)
class RefundStatusChanged(DomainEvent):
    """
    Fired after a refund request transition commits.

    ``notification_type`` is the template key the notification layer uses;
    ``previous_status`` is None for a newly submitted request.
    """

    refund_id: int = 0
    booking_id: int = 0
    requested_by: int = 0
    previous_status: Optional[str] = None
    new_status: str = ""
    refund_event: str = ""
    notification_type: str = ""
    user_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class RefundCommentAdded(DomainEvent):
    refund_id: int = 0
    comment_id: int = 0
    requested_by: int = 0
    is_internal: bool = False
    author_is_staff: bool = False
    user_id: Optional[int] = None


@dataclass(eq=False)
class RefundDocumentUploaded(DomainEvent):
    refund_id: int = 0
    document_id: int = 0
    document_type: str = ""
    file_name: str = ""
    user_id: Optional[int] = None


class EventBus:
    """
    Central synchronous event bus for domain events.

    Handlers run in publish order. A failing handler is logged and never
    propagates to the publisher, so side effects such as notifications
    cannot undo the operation that raised the event.

    Usage:
        global_event_bus.subscribe(RefundStatusChanged, handle_refund_changed)
        global_event_bus.publish(RefundStatusChanged(refund_id=123))
    """

    def __init__(self):
        self.subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    @staticmethod
    def _type_name(event_type: Union[str, Type[DomainEvent]]) -> str:
        return event_type.__name__ if isinstance(event_type, type) else str(event_type)

    def publish(self, event: DomainEvent) -> None:
        """
        Publish an event to all registered handlers.

        Args:
            event: The domain event to publish
        """
        event_type = type(event).__name__
        logger.debug(f"Publishing event {event_type}: {event.to_dict()}")
        with self._lock:
            subscribers_copy = list(self.subscribers.get(event_type, []))
        for handler in subscribers_copy:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in handler {getattr(handler, '__name__', repr(handler))} "
                    f"for {event_type} ID {event.event_id}: {e}",
                    exc_info=True,
                )

    def subscribe(self, event_type: Union[str, Type[DomainEvent]], handler: EventHandler) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event class or event type name string
            handler: Callable to handle the event
        """
        event_type_name = self._type_name(event_type)
        with self._lock:
            self.subscribers[event_type_name].append(handler)
        logger.debug(f"Subscribed handler {getattr(handler, '__name__', repr(handler))} to {event_type_name}")

    def unsubscribe(self, event_type: Union[str, Type[DomainEvent]], handler: EventHandler) -> bool:
        """
        Unsubscribe a handler.

        Returns:
            True if the handler was registered and has been removed
        """
        event_type_name = self._type_name(event_type)
        with self._lock:
            handlers = self.subscribers.get(event_type_name, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def clear(self) -> None:
        """Remove every subscription."""
        with self._lock:
            self.subscribers.clear()


global_event_bus = EventBus()
