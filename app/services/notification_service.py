# File: app/services/notification_service.py
"""
Refund notifications.

The notification service listens on the event bus and turns committed
refund events into ``Notification`` messages for a ``NotificationSender``.
Delivery is fire-and-forget: the event bus logs a failing sender and the
refund operation that raised the event is unaffected.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
import logging

from app.core.events import (
    EventBus,
    RefundCommentAdded,
    RefundDocumentUploaded,
    RefundStatusChanged,
    global_event_bus,
)

logger = logging.getLogger(__name__)

# Audiences a notification can be addressed to
AUDIENCE_REQUESTER = "requester"
AUDIENCE_STAFF = "staff"


@dataclass(frozen=True)
class Notification:
    """A message for the notification collaborator."""

    event_type: str
    request_id: int
    actor_id: Optional[int]
    audience: str
    recipient_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotificationSender(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationSender:
    """Sender that writes notifications to the application log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            f"Notification {notification.event_type} for refund {notification.request_id} "
            f"to {notification.audience}"
            + (f" {notification.recipient_id}" if notification.recipient_id is not None else "")
        )


class NotificationService:
    """
    Service translating refund domain events into notifications.

    Call ``register`` once to subscribe to the event bus.
    """

    def __init__(
        self,
        sender: Optional[NotificationSender] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.sender = sender or LoggingNotificationSender()
        self.event_bus = event_bus if event_bus is not None else global_event_bus
        self._registered = False

    def register(self) -> None:
        """Subscribe the handlers to the event bus."""
        if self._registered:
            return
        self.event_bus.subscribe(RefundStatusChanged, self.handle_status_changed)
        self.event_bus.subscribe(RefundCommentAdded, self.handle_comment_added)
        self.event_bus.subscribe(RefundDocumentUploaded, self.handle_document_uploaded)
        self._registered = True

    def unregister(self) -> None:
        self.event_bus.unsubscribe(RefundStatusChanged, self.handle_status_changed)
        self.event_bus.unsubscribe(RefundCommentAdded, self.handle_comment_added)
        self.event_bus.unsubscribe(RefundDocumentUploaded, self.handle_document_uploaded)
        self._registered = False

    def _send_all(self, notifications: List[Notification]) -> None:
        for notification in notifications:
            self.sender.send(notification)

    def handle_status_changed(self, event: RefundStatusChanged) -> None:
        """
        Notify about a refund transition.

        A new request goes to staff; every later transition goes to the
        requester.
        """
        metadata = {
            "booking_id": event.booking_id,
            "previous_status": event.previous_status,
            "new_status": event.new_status,
            **event.metadata,
        }
        if event.previous_status is None:
            audience, recipient = AUDIENCE_STAFF, None
        else:
            audience, recipient = AUDIENCE_REQUESTER, event.requested_by

        self._send_all(
            [
                Notification(
                    event_type=event.notification_type,
                    request_id=event.refund_id,
                    actor_id=event.user_id,
                    audience=audience,
                    recipient_id=recipient,
                    metadata=metadata,
                )
            ]
        )

    def handle_comment_added(self, event: RefundCommentAdded) -> None:
        """Notify the other side of the conversation; internal notes notify nobody."""
        if event.is_internal:
            return
        if event.author_is_staff:
            audience, recipient = AUDIENCE_REQUESTER, event.requested_by
        else:
            audience, recipient = AUDIENCE_STAFF, None

        self._send_all(
            [
                Notification(
                    event_type="refund_comment_added",
                    request_id=event.refund_id,
                    actor_id=event.user_id,
                    audience=audience,
                    recipient_id=recipient,
                    metadata={"comment_id": event.comment_id},
                )
            ]
        )

    def handle_document_uploaded(self, event: RefundDocumentUploaded) -> None:
        self._send_all(
            [
                Notification(
                    event_type="refund_document_uploaded",
                    request_id=event.refund_id,
                    actor_id=event.user_id,
                    audience=AUDIENCE_STAFF,
                    metadata={
                        "document_id": event.document_id,
                        "document_type": event.document_type,
                        "file_name": event.file_name,
                    },
                )
            ]
        )
