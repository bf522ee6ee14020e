# tests/test_notifications.py
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidStatusTransitionException
from app.db.models.enums import RefundStatus
from app.services.notification_service import (
    AUDIENCE_REQUESTER,
    AUDIENCE_STAFF,
    NotificationService,
)
from app.services.refund_activity_service import RefundActivityService
from app.services.refund_document_service import RefundDocumentService
from app.services.refund_service import RefundService


class RecordingSender:
    def __init__(self):
        self.sent = []

    def send(self, notification):
        self.sent.append(notification)


class FailingSender:
    def send(self, notification):
        raise ConnectionError("mail relay unreachable")


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def notifications(event_bus, sender):
    service = NotificationService(sender=sender, event_bus=event_bus)
    service.register()
    yield service
    service.unregister()


@pytest.fixture()
def refund_service(db, event_bus):
    return RefundService(db, event_bus=event_bus)


def submit(refund_service, guest):
    return refund_service.create_refund_request(
        {"booking_id": 900, "requested_amount": "80"}, guest
    )


def test_new_request_notifies_staff(notifications, sender, refund_service, guest):
    request = submit(refund_service, guest)

    assert len(sender.sent) == 1
    notification = sender.sent[0]
    assert notification.event_type == "refund_requested"
    assert notification.audience == AUDIENCE_STAFF
    assert notification.request_id == request.id
    assert notification.actor_id == guest.id
    assert notification.metadata["new_status"] == "requested"


def test_transitions_notify_requester(notifications, sender, refund_service, guest, manager):
    request = submit(refund_service, guest)
    refund_service.start_review(request.id, manager)
    refund_service.approve(request.id, manager, Decimal("60"))

    event_types = [n.event_type for n in sender.sent]
    assert event_types == ["refund_requested", "refund_under_review", "refund_approved"]
    for notification in sender.sent[1:]:
        assert notification.audience == AUDIENCE_REQUESTER
        assert notification.recipient_id == guest.id
        assert notification.actor_id == manager.id
    assert sender.sent[-1].metadata["previous_status"] == "under_review"


def test_rejected_transition_sends_nothing(notifications, sender, refund_service, guest, manager):
    request = submit(refund_service, guest)
    sender.sent.clear()

    with pytest.raises(InvalidStatusTransitionException):
        refund_service.approve(request.id, manager, Decimal("60"))
    assert sender.sent == []


def test_comment_audiences(notifications, sender, db, event_bus, refund_service, guest, manager):
    activity = RefundActivityService(db, event_bus=event_bus, refund_service=refund_service)
    request = submit(refund_service, guest)
    sender.sent.clear()

    activity.add_comment(request.id, manager, "Internal: check folio", is_internal=True)
    assert sender.sent == []

    activity.add_comment(request.id, manager, "We are looking into it")
    activity.add_comment(request.id, guest, "Thanks")

    assert [(n.event_type, n.audience, n.recipient_id) for n in sender.sent] == [
        ("refund_comment_added", AUDIENCE_REQUESTER, guest.id),
        ("refund_comment_added", AUDIENCE_STAFF, None),
    ]


def test_document_upload_notifies_staff(notifications, sender, db, event_bus, refund_service, guest):
    documents = RefundDocumentService(db, event_bus=event_bus, refund_service=refund_service)
    request = submit(refund_service, guest)
    sender.sent.clear()

    documents.upload_document(
        request.id,
        {
            "file_name": "cancellation.png",
            "file_size": 1024,
            "file_type": "image/png",
            "storage_path": "refunds/cancellation.png",
            "document_type": "proof_of_cancellation",
        },
        guest,
    )

    assert len(sender.sent) == 1
    assert sender.sent[0].audience == AUDIENCE_STAFF
    assert sender.sent[0].metadata["file_name"] == "cancellation.png"


def test_failing_sender_does_not_break_refund(event_bus, refund_service, guest, manager):
    service = NotificationService(sender=FailingSender(), event_bus=event_bus)
    service.register()
    try:
        request = submit(refund_service, guest)
        reviewed = refund_service.start_review(request.id, manager)
    finally:
        service.unregister()

    assert reviewed.status is RefundStatus.UNDER_REVIEW


def test_register_is_idempotent(event_bus, sender, refund_service, guest):
    service = NotificationService(sender=sender, event_bus=event_bus)
    service.register()
    service.register()
    submit(refund_service, guest)
    service.unregister()

    assert len(sender.sent) == 1
