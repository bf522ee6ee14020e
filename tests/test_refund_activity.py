# tests/test_refund_activity.py
from datetime import datetime
from decimal import Decimal

import pytest

from app.core.events import RefundCommentAdded
from app.core.exceptions import ForbiddenException, ValidationException
from app.db.models.enums import RefundStatus
from app.db.models.refund import RefundComment, RefundStatusHistory
from app.services.refund_activity_service import (
    ACTIVITY_COMMENT,
    ACTIVITY_STATUS_CHANGE,
    RefundActivityService,
    merge_activity,
)
from app.services.refund_service import RefundService


@pytest.fixture()
def refund_service(db, event_bus):
    return RefundService(db, event_bus=event_bus)


@pytest.fixture()
def service(db, event_bus, refund_service):
    return RefundActivityService(db, event_bus=event_bus, refund_service=refund_service)


@pytest.fixture()
def request_id(refund_service, guest):
    return refund_service.create_refund_request(
        {"booking_id": 900, "requested_amount": "120", "reason": "Flight cancelled"}, guest
    ).id


def test_merge_orders_most_recent_first():
    at = datetime(2025, 5, 1, 12, 0, 0)
    later = datetime(2025, 5, 1, 12, 5, 0)
    history = [
        RefundStatusHistory(
            id=1, from_status=None, to_status=RefundStatus.REQUESTED, changed_by=42, changed_at=at
        ),
        RefundStatusHistory(
            id=2,
            from_status=RefundStatus.REQUESTED,
            to_status=RefundStatus.UNDER_REVIEW,
            changed_by=7,
            changed_at=later,
            change_reason="Opened for review",
        ),
    ]
    comments = [
        RefundComment(id=5, user_id=42, comment_text="Any news?", is_internal=False, created_at=later),
        RefundComment(id=4, user_id=42, comment_text="Receipt attached", is_internal=False, created_at=at),
    ]

    entries = merge_activity(history, comments)

    assert [(e.activity_type, e.activity_id) for e in entries] == [
        (ACTIVITY_STATUS_CHANGE, 2),
        (ACTIVITY_COMMENT, 5),
        (ACTIVITY_STATUS_CHANGE, 1),
        (ACTIVITY_COMMENT, 4),
    ]
    assert entries[0].description == "requested → under_review"
    assert entries[0].additional_info == "Opened for review"
    assert entries[2].description == "new → requested"
    # Input order does not matter
    assert merge_activity(list(reversed(history)), list(reversed(comments))) == entries


def test_add_comment(service, request_id, guest, event_bus):
    received = []
    event_bus.subscribe(RefundCommentAdded, received.append)

    comment = service.add_comment(request_id, guest, "  Booking was cancelled by the airline  ")
    assert comment.comment_text == "Booking was cancelled by the airline"
    assert comment.is_internal is False
    assert received[0].comment_id == comment.id
    assert received[0].author_is_staff is False


def test_guest_cannot_write_internal_comment(service, request_id, guest):
    comment = service.add_comment(request_id, guest, "Please hurry", is_internal=True)
    assert comment.is_internal is False


@pytest.mark.parametrize("text", ["", "   ", "x" * 2001])
def test_comment_length(service, request_id, guest, text):
    with pytest.raises(ValidationException):
        service.add_comment(request_id, guest, text)


def test_comment_at_max_length(service, request_id, guest):
    assert len(service.add_comment(request_id, guest, "x" * 2000).comment_text) == 2000


def test_other_guest_cannot_comment(service, request_id, other_guest):
    with pytest.raises(ForbiddenException):
        service.add_comment(request_id, other_guest, "Me too")


def test_internal_comments_hidden_from_guest(service, refund_service, request_id, guest, manager):
    service.add_comment(request_id, guest, "Receipt attached")
    service.add_comment(request_id, manager, "Check with the front desk", is_internal=True)
    refund_service.start_review(request_id, manager)

    staff_view = service.activity(request_id, manager)
    guest_view = service.activity(request_id, guest)

    assert len(staff_view) == 4
    assert len(guest_view) == 3
    assert all(not entry.is_internal for entry in guest_view)
    assert [c.comment_text for c in service.list_comments(request_id, guest)] == ["Receipt attached"]
    assert len(service.list_comments(request_id, manager)) == 2

    # An explicit flag never widens a guest's view
    assert len(service.activity(request_id, guest, include_internal=True)) == 3
    assert len(service.activity(request_id, include_internal=True)) == 4
    assert len(service.activity(request_id)) == 3


def test_ledger_tracks_every_transition(service, refund_service, request_id, guest, manager):
    refund_service.start_review(request_id, manager)
    refund_service.approve(request_id, manager, Decimal("100"))

    history = service.status_history(request_id, guest)
    current = refund_service.get_refund_request(request_id, guest)
    assert history[-1].to_status is current.status

    changes = [e for e in service.activity(request_id, guest) if e.activity_type == ACTIVITY_STATUS_CHANGE]
    assert changes[0].description == "under_review → approved"
    assert len(changes) == 3
