# tests/test_refund_service.py
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.events import EventBus, RefundStatusChanged
from app.core.exceptions import (
    BusinessRuleException,
    ForbiddenException,
    InvalidStatusTransitionException,
    RefundNotFoundException,
    ValidationException,
)
from app.core.security import SYSTEM_ACTOR
from app.db.models.enums import RefundEvent, RefundStatus
from app.db.models.refund import RefundRequest
from app.db.session import build_engine, init_db
from app.services.payment_provider import ProviderRefundResult
from app.services.refund_service import RefundService


class DecliningProvider:
    def request_refund(self, request):
        return ProviderRefundResult(accepted=False, reason="Card account closed")


class BrokenProvider:
    def request_refund(self, request):
        raise ConnectionError("gateway timeout")


class InstantProvider:
    def __init__(self):
        self.requests = []

    def request_refund(self, request):
        self.requests.append(request)
        return ProviderRefundResult(
            accepted=True,
            gateway_refund_id=f"gw-{request.request_id}",
            refunded_amount=request.approved_amount,
            credit_memo_id=f"CM-{request.request_id}",
        )


@pytest.fixture()
def status_events(event_bus):
    received = []
    event_bus.subscribe(RefundStatusChanged, received.append)
    return received


@pytest.fixture()
def service(db, event_bus):
    return RefundService(db, event_bus=event_bus)


def submit(service, guest, booking_id=501, amount="100.00", **extra):
    data = {"booking_id": booking_id, "requested_amount": amount, "reason": "Trip cancelled", **extra}
    return service.create_refund_request(data, guest)


def approved_request(service, guest, manager, amount="80"):
    request = submit(service, guest)
    service.start_review(request.id, manager)
    service.approve(request.id, manager, Decimal(amount))
    return request


# Submission


def test_submit_refund_request(service, guest, status_events):
    request = submit(service, guest)

    assert request.status is RefundStatus.REQUESTED
    assert request.requested_by == guest.id
    assert request.requested_amount == Decimal("100.00")
    assert request.version == 1

    history = service.history_repository.list_for_request(request.id)
    assert len(history) == 1
    assert history[0].from_status is None
    assert history[0].to_status is RefundStatus.REQUESTED
    assert history[0].event == "submit"

    assert len(status_events) == 1
    assert status_events[0].notification_type == "refund_requested"
    assert status_events[0].previous_status is None


@pytest.mark.parametrize(
    "amount, extra, rule",
    [
        ("0", {}, "NON_POSITIVE_AMOUNT"),
        ("-5", {}, "NON_POSITIVE_AMOUNT"),
        (None, {}, "MISSING_FIELD"),
        ("150", {"available_amount": "120"}, "AMOUNT_EXCEEDS_AVAILABLE"),
    ],
)
def test_submit_validation(service, guest, amount, extra, rule):
    with pytest.raises(ValidationException) as exc:
        submit(service, guest, amount=amount, **extra)
    assert exc.value.rule_name == rule


def test_one_open_request_per_booking(service, guest, manager):
    first = submit(service, guest)
    with pytest.raises(BusinessRuleException) as exc:
        submit(service, guest)
    assert exc.value.details["rule_name"] == "ACTIVE_REFUND_EXISTS"
    assert exc.value.details["refund_id"] == first.id

    service.start_review(first.id, manager)
    service.reject(first.id, manager, "Outside the cancellation window")
    assert submit(service, guest).id != first.id


def test_staff_may_submit_on_behalf_of_guest(service, manager, guest):
    request = submit(service, manager, requested_by=guest.id)
    assert request.requested_by == guest.id

    ignored = submit(service, guest, booking_id=502, requested_by=999)
    assert ignored.requested_by == guest.id


# Access


def test_guest_sees_only_own_requests(service, guest, other_guest, manager):
    mine = submit(service, guest, booking_id=1)
    theirs = submit(service, other_guest, booking_id=2)

    assert service.get_refund_request(mine.id, guest).id == mine.id
    with pytest.raises(ForbiddenException):
        service.get_refund_request(theirs.id, guest)

    assert [r.id for r in service.list_refund_requests(guest)] == [mine.id]
    assert {r.id for r in service.list_refund_requests(manager)} == {mine.id, theirs.id}


def test_missing_request(service, manager):
    with pytest.raises(RefundNotFoundException):
        service.get_refund_request(404, manager)


def test_staff_view_starts_review(service, guest, manager):
    request = submit(service, guest)

    assert service.view_refund_request(request.id, guest).status is RefundStatus.REQUESTED
    viewed = service.view_refund_request(request.id, manager)
    assert viewed.status is RefundStatus.UNDER_REVIEW
    assert viewed.reviewed_by == manager.id

    # A second look changes nothing
    assert service.view_refund_request(request.id, manager).status is RefundStatus.UNDER_REVIEW
    assert len(service.history_repository.list_for_request(request.id)) == 2


# Transitions


def test_guest_cannot_transition(service, guest):
    request = submit(service, guest)
    with pytest.raises(ForbiddenException):
        service.start_review(request.id, guest)


def test_second_approve_is_rejected(service, guest, manager):
    request = approved_request(service, guest, manager)

    with pytest.raises(InvalidStatusTransitionException) as exc:
        service.approve(request.id, manager, Decimal("90"))
    assert exc.value.current_status == "approved"
    assert exc.value.attempted_event == "approve"

    current = service.get_refund_request(request.id, manager)
    assert current.status is RefundStatus.APPROVED
    assert current.approved_amount == Decimal("80.00")


def test_illegal_event_leaves_no_trace(service, guest, manager):
    request = submit(service, guest)
    with pytest.raises(InvalidStatusTransitionException) as exc:
        service.transition(request.id, RefundEvent.COMPLETE, manager)
    assert exc.value.details["allowed_events"] == ["start_review"]
    assert len(service.history_repository.list_for_request(request.id)) == 1


def test_approve_requires_amount(service, guest, manager):
    request = submit(service, guest)
    service.start_review(request.id, manager)

    with pytest.raises(ValidationException) as exc:
        service.transition(request.id, "approve", manager, {})
    assert exc.value.rule_name == "MISSING_TRANSITION_FIELD"

    with pytest.raises(ValidationException) as exc:
        service.approve(request.id, manager, Decimal("100.01"))
    assert exc.value.rule_name == "AMOUNT_EXCEEDS_REQUESTED"

    assert service.get_refund_request(request.id, manager).status is RefundStatus.UNDER_REVIEW
    assert len(service.history_repository.list_for_request(request.id)) == 2


def test_reject_requires_notes_and_is_terminal(service, guest, manager, status_events):
    request = submit(service, guest)
    service.start_review(request.id, manager)

    with pytest.raises(ValidationException):
        service.reject(request.id, manager, "   ")

    rejected = service.reject(request.id, manager, "Non-refundable rate")
    assert rejected.status is RefundStatus.REJECTED
    assert rejected.review_notes == "Non-refundable rate"
    assert status_events[-1].notification_type == "refund_rejected"

    for event in RefundEvent:
        with pytest.raises(InvalidStatusTransitionException):
            service.transition(request.id, event, manager, {"review_notes": "again"})


def test_review_fields_are_set_once(service, guest, manager, admin):
    request = submit(service, guest)
    service.start_review(request.id, manager)
    approved = service.approve(request.id, admin, Decimal("50"), review_notes="Partial refund")

    assert approved.reviewed_by == manager.id
    assert approved.review_notes == "Partial refund"
    assert approved.approved_amount == Decimal("50.00")


def test_full_lifecycle_with_provider_callback(service, guest, manager, status_events):
    request = approved_request(service, guest, manager)

    processing = service.start_processing(request.id, manager)
    assert processing.status is RefundStatus.PROCESSING
    assert processing.processed_by == manager.id
    assert processing.gateway_refund_id == f"manual-{request.id}"

    with pytest.raises(ValidationException) as exc:
        service.handle_provider_result(
            succeeded=True,
            gateway_refund_id=f"manual-{request.id}",
            refunded_amount=Decimal("81"),
            credit_memo_id="CM-9",
        )
    assert exc.value.rule_name == "AMOUNT_EXCEEDS_APPROVED"

    completed = service.handle_provider_result(
        succeeded=True,
        gateway_refund_id=f"manual-{request.id}",
        refunded_amount=Decimal("80"),
        credit_memo_id="CM-9",
    )
    assert completed.status is RefundStatus.COMPLETED
    assert completed.refunded_amount == Decimal("80.00")
    assert completed.credit_memo_id == "CM-9"
    assert completed.completed_at is not None

    history = service.history_repository.list_for_request(request.id)
    assert [(h.from_status, h.to_status) for h in history] == [
        (None, RefundStatus.REQUESTED),
        (RefundStatus.REQUESTED, RefundStatus.UNDER_REVIEW),
        (RefundStatus.UNDER_REVIEW, RefundStatus.APPROVED),
        (RefundStatus.APPROVED, RefundStatus.PROCESSING),
        (RefundStatus.PROCESSING, RefundStatus.COMPLETED),
    ]
    assert history[-1].changed_by == SYSTEM_ACTOR.id
    assert [e.notification_type for e in status_events] == [
        "refund_requested",
        "refund_under_review",
        "refund_approved",
        "refund_processing_started",
        "refund_completed",
    ]


def test_provider_decline_fails_request(db, event_bus, guest, manager):
    service = RefundService(db, event_bus=event_bus, payment_provider=DecliningProvider())
    request = approved_request(service, guest, manager)

    failed = service.start_processing(request.id, manager)
    assert failed.status is RefundStatus.FAILED
    assert failed.failure_reason == "Card account closed"


def test_provider_error_fails_request(db, event_bus, guest, manager):
    service = RefundService(db, event_bus=event_bus, payment_provider=BrokenProvider())
    request = approved_request(service, guest, manager)

    failed = service.start_processing(request.id, manager)
    assert failed.status is RefundStatus.FAILED
    assert "gateway timeout" in failed.failure_reason


def test_provider_that_settles_immediately(db, event_bus, guest, manager):
    provider = InstantProvider()
    service = RefundService(db, event_bus=event_bus, payment_provider=provider)
    request = approved_request(service, guest, manager, amount="60")

    completed = service.start_processing(request.id, manager)
    assert completed.status is RefundStatus.COMPLETED
    assert completed.gateway_refund_id == f"gw-{request.id}"
    assert completed.credit_memo_id == f"CM-{request.id}"
    assert provider.requests[0].approved_amount == Decimal("60.00")


def test_free_text_fields_accept_non_string_values(service, guest, manager):
    rejected = submit(service, guest)
    service.start_review(rejected.id, manager)
    assert service.reject(rejected.id, manager, 404).review_notes == "404"

    failed = approved_request(service, guest, manager)
    service.start_processing(failed.id, manager)
    assert service.fail(failed.id, manager, 500).failure_reason == "500"


def test_failure_callback(service, guest, manager):
    request = approved_request(service, guest, manager)
    service.start_processing(request.id, manager)

    failed = service.handle_provider_result(succeeded=False, refund_id=request.id)
    assert failed.status is RefundStatus.FAILED
    assert failed.failure_reason == "Refund failed at payment provider"

    with pytest.raises(RefundNotFoundException):
        service.handle_provider_result(succeeded=False, gateway_refund_id="unknown")


def test_concurrent_transitions_have_one_winner(tmp_path, guest, manager, admin):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_db(bind=engine)
    make_session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    bus = EventBus()

    setup = RefundService(make_session(), event_bus=bus)
    request_id = submit(setup, guest).id
    setup.start_review(request_id, manager)

    first_session, second_session = make_session(), make_session()
    first = RefundService(first_session, event_bus=bus)
    second = RefundService(second_session, event_bus=bus)

    # Both reviewers load the request while it is under review
    assert first_session.get(RefundRequest, request_id).status is RefundStatus.UNDER_REVIEW
    assert second_session.get(RefundRequest, request_id).status is RefundStatus.UNDER_REVIEW

    second.reject(request_id, admin, "Duplicate of an earlier claim")

    with pytest.raises(InvalidStatusTransitionException) as exc:
        first.approve(request_id, manager, Decimal("40"))
    assert exc.value.current_status == "rejected"
    assert exc.value.attempted_event == "approve"

    check = make_session()
    final = check.get(RefundRequest, request_id)
    assert final.status is RefundStatus.REJECTED
    assert final.approved_amount is None
    assert [h.to_status for h in final.status_history] == [
        RefundStatus.REQUESTED,
        RefundStatus.UNDER_REVIEW,
        RefundStatus.REJECTED,
    ]
    for session in (check, first_session, second_session):
        session.close()
    engine.dispose()


# Booking summary


def test_booking_refund_summary(db, event_bus, guest, other_guest, manager):
    service = RefundService(db, event_bus=event_bus, payment_provider=InstantProvider())

    empty = service.get_booking_refund_summary(501, guest, amount_paid=Decimal("200"))
    assert empty["refund_status"] == "none"
    assert empty["total_refunded"] == Decimal("0.00")
    assert empty["available_for_refund"] == Decimal("200.00")

    first = approved_request(service, guest, manager, amount="80")
    service.start_processing(first.id, manager)
    second = submit(service, guest, amount="50")

    summary = service.get_booking_refund_summary(501, guest, amount_paid=Decimal("200"))
    assert summary["total_paid"] == Decimal("200.00")
    assert summary["total_refunded"] == Decimal("80.00")
    assert summary["available_for_refund"] == Decimal("120.00")
    assert summary["refund_status"] == "partial"
    assert summary["active_refund_requests"] == 1
    assert [r.id for r in summary["pending_refund_requests"]] == [second.id]
    assert [r.id for r in summary["completed_refund_requests"]] == [first.id]

    full = service.get_booking_refund_summary(501, manager, amount_paid=Decimal("80"))
    assert full["refund_status"] == "full"
    assert full["available_for_refund"] == Decimal("0.00")

    unknown_paid = service.get_booking_refund_summary(501, manager)
    assert unknown_paid["refund_status"] == "partial"
    assert unknown_paid["total_paid"] is None
    assert unknown_paid["available_for_refund"] is None

    with pytest.raises(ForbiddenException):
        service.get_booking_refund_summary(501, other_guest)
