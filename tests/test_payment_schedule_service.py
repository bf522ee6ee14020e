# tests/test_payment_schedule_service.py
from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import (
    BusinessRuleException,
    NoApplicableRuleException,
    ValidationException,
)
from app.db.models.enums import DueTiming, MilestoneStatus
from app.services.payment_rule_service import PaymentRuleService
from app.services.payment_schedule_service import (
    BookingContext,
    PaymentScheduleService,
    expand,
)
from app.services.payment_terms import parse_terms

BOOKED = date(2025, 5, 1)
CHECKIN = date(2025, 8, 15)


def booking(total):
    return BookingContext(total_price=Decimal(total), booking_date=BOOKED, checkin_date=CHECKIN)


def schedule_terms(*milestones):
    return parse_terms("payment_schedule", {"schedule_config": list(milestones)})


# Pure expansion


def test_percentage_deposit_splits_total():
    terms = parse_terms(
        "deposit",
        {
            "deposit_type": "percentage",
            "deposit_amount": 30,
            "deposit_due": "at_booking",
            "balance_due": "days_before_checkin",
            "balance_due_days": 14,
        },
    )
    lines = expand(terms, booking("1000"))

    assert [(line.label, line.amount) for line in lines] == [
        ("Deposit", Decimal("300.00")),
        ("Balance", Decimal("700.00")),
    ]
    assert lines[0].due_date == BOOKED
    assert lines[1].due_date == date(2025, 8, 1)


def test_fixed_deposit_is_capped_at_total():
    terms = parse_terms(
        "deposit",
        {
            "deposit_type": "fixed_amount",
            "deposit_amount": 500,
            "deposit_due": "days_after_booking",
            "deposit_due_days": 3,
            "balance_due": "on_checkin",
        },
    )
    lines = expand(terms, booking("400"))
    assert [line.amount for line in lines] == [Decimal("400.00"), Decimal("0.00")]
    assert lines[0].due_date == date(2025, 5, 4)
    assert lines[1].due_date == CHECKIN


def test_percentage_schedule_splits_total():
    terms = schedule_terms(
        {"sequence": 1, "name": "Deposit", "amount_type": "percentage", "amount": 50, "due": "at_booking"},
        {
            "sequence": 2,
            "name": "Second payment",
            "amount_type": "percentage",
            "amount": 30,
            "due": "days_before_checkin",
            "days": 30,
        },
        {"sequence": 3, "name": "Final", "amount_type": "percentage", "amount": 20, "due": "on_checkin"},
    )
    lines = expand(terms, booking("2000"))

    assert [line.amount for line in lines] == [
        Decimal("1000.00"),
        Decimal("600.00"),
        Decimal("400.00"),
    ]
    assert [line.label for line in lines] == ["Deposit", "Second payment", "Final"]
    assert lines[1].due_date == date(2025, 7, 16)


def test_last_line_absorbs_rounding():
    terms = schedule_terms(
        *[
            {"sequence": i, "name": f"Part {i}", "amount_type": "percentage", "amount": "33.33", "due": "at_booking"}
            for i in (1, 2)
        ],
        {"sequence": 3, "name": "Part 3", "amount_type": "percentage", "amount": "33.34", "due": "on_checkin"},
    )
    lines = expand(terms, booking("100.01"))
    assert sum(line.amount for line in lines) == Decimal("100.01")
    assert lines[0].amount == Decimal("33.33")


def test_specific_date_in_the_past_is_kept():
    past = date(2025, 1, 1)
    terms = schedule_terms(
        {
            "sequence": 1,
            "name": "Early bird",
            "amount_type": "fixed_amount",
            "amount": 100,
            "due": "specific_date",
            "specific_date": past.isoformat(),
        }
    )
    lines = expand(terms, booking("250"))
    assert lines[0].due_date == past
    assert lines[0].due_timing is DueTiming.SPECIFIC_DATE


def test_offset_longer_than_lead_time_is_not_clamped():
    terms = parse_terms(
        "deposit",
        {
            "deposit_type": "percentage",
            "deposit_amount": 20,
            "deposit_due": "at_booking",
            "balance_due": "days_before_checkin",
            "balance_due_days": 30,
        },
    )
    late = BookingContext(
        total_price=Decimal("500"), booking_date=date(2025, 8, 1), checkin_date=date(2025, 8, 10)
    )
    lines = expand(terms, late)

    assert lines[1].due_date == date(2025, 7, 11)
    assert lines[1].due_date < late.booking_date
    assert lines[1].amount == Decimal("400.00")


def test_flexible_rule_has_no_lines():
    assert expand(parse_terms("flexible", {}), booking("900")) == []


# Persisted schedules


@pytest.fixture()
def rule_service(db, event_bus):
    return PaymentRuleService(db, event_bus=event_bus)


@pytest.fixture()
def service(db, event_bus, rule_service):
    return PaymentScheduleService(db, event_bus=event_bus, payment_rule_service=rule_service)


@pytest.fixture()
def deposit_room(rule_service, lodge, rooms):
    rule = rule_service.create_rule(
        {
            "property_id": lodge.id,
            "rule_name": "30% deposit",
            "rule_type": "deposit",
            "deposit_type": "percentage",
            "deposit_amount": 30,
            "deposit_due": "at_booking",
            "balance_due": "days_before_checkin",
            "balance_due_days": 14,
        }
    )
    rule_service.assign_rooms(rule.id, [rooms[0].id])
    return rooms[0]


def test_preview_uses_resolved_rule(service, lodge, deposit_room):
    lines = service.preview_schedule(lodge.id, deposit_room.id, booking("1000"))
    assert [line.amount for line in lines] == [Decimal("300.00"), Decimal("700.00")]


def test_preview_without_rule(service, lodge, rooms):
    with pytest.raises(NoApplicableRuleException):
        service.preview_schedule(lodge.id, rooms[1].id, booking("1000"))


def test_resolution_and_expansion_are_repeatable(service, rule_service, lodge, deposit_room):
    first = rule_service.resolve_rule(lodge.id, deposit_room.id, CHECKIN)
    second = rule_service.resolve_rule(lodge.id, deposit_room.id, CHECKIN)
    assert first.id == second.id

    assert expand(first, booking("1234.56")) == expand(first, booking("1234.56"))
    assert service.preview_schedule(lodge.id, deposit_room.id, booking("1234.56")) == expand(
        first, booking("1234.56")
    )


def test_generate_schedule(service, lodge, deposit_room):
    milestones = service.generate_schedule(77, lodge.id, deposit_room.id, booking("1000"))

    assert [m.milestone_sequence for m in milestones] == [1, 2]
    assert all(m.status is MilestoneStatus.PENDING for m in milestones)
    assert milestones[0].created_from_rule_id is not None

    with pytest.raises(BusinessRuleException) as exc:
        service.generate_schedule(77, lodge.id, deposit_room.id, booking("1000"))
    assert exc.value.details["rule_name"] == "SCHEDULE_EXISTS"


def test_concurrent_generate_keeps_one_schedule(service, lodge, deposit_room, monkeypatch):
    service.generate_schedule(79, lodge.id, deposit_room.id, booking("1000"))

    # The competing call checked before the first schedule was committed
    monkeypatch.setattr(service.repository, "list_for_booking", lambda booking_id: [])
    with pytest.raises(BusinessRuleException) as exc:
        service.generate_schedule(79, lodge.id, deposit_room.id, booking("1000"))
    assert exc.value.details["rule_name"] == "SCHEDULE_EXISTS"

    monkeypatch.undo()
    assert [m.milestone_sequence for m in service.get_schedule(79)] == [1, 2]


def test_record_payments_and_summary(service, lodge, deposit_room):
    deposit, balance = service.generate_schedule(78, lodge.id, deposit_room.id, booking("1000"))

    assert service.record_payment(deposit.id, Decimal("100")).status is MilestoneStatus.PARTIAL
    paid = service.record_payment(deposit.id, Decimal("200"))
    assert paid.status is MilestoneStatus.PAID
    assert paid.paid_at is not None

    with pytest.raises(BusinessRuleException):
        service.record_payment(deposit.id, Decimal("1"))
    with pytest.raises(ValidationException):
        service.record_payment(balance.id, Decimal("0"))

    summary = service.get_schedule_summary(78)
    assert summary["total_due"] == Decimal("1000.00")
    assert summary["total_paid"] == Decimal("300.00")
    assert summary["outstanding"] == Decimal("700.00")
    assert summary["next_due_date"] == date(2025, 8, 1)
    assert summary["next_due_amount"] == Decimal("700.00")


def test_overdue_and_cancel(service, lodge, deposit_room):
    service.generate_schedule(79, lodge.id, deposit_room.id, booking("1000"))

    assert service.mark_overdue_milestones(today=date(2025, 5, 2)) == 1
    assert service.get_schedule_summary(79)["overdue_count"] == 1

    assert service.cancel_booking_schedule(79) == 2
    assert {m.status for m in service.get_schedule(79)} == {MilestoneStatus.CANCELLED}


def test_deposit_due_at_booking_balance_on_checkin():
    terms = parse_terms(
        "deposit",
        {
            "deposit_type": "percentage",
            "deposit_amount": 30,
            "deposit_due": "at_booking",
            "balance_due": "on_checkin",
        },
    )
    context = BookingContext(
        total_price=Decimal("1000"), booking_date=BOOKED, checkin_date=date(2025, 5, 11)
    )
    lines = expand(terms, context)

    assert [(line.amount, line.due_date) for line in lines] == [
        (Decimal("300.00"), BOOKED),
        (Decimal("700.00"), date(2025, 5, 11)),
    ]
    # Same inputs, same output
    assert expand(terms, context) == lines
