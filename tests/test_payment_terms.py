# tests/test_payment_terms.py
from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import ValidationException
from app.db.models.enums import AmountType, DueTiming, PaymentRuleType
from app.services.payment_terms import (
    DepositTerms,
    FlexibleTerms,
    ScheduleTerms,
    parse_terms,
    terms_to_columns,
    validate_applicability,
    validate_terms,
)


def deposit_payload(**overrides):
    payload = {
        "deposit_type": "percentage",
        "deposit_amount": 30,
        "deposit_due": "at_booking",
        "balance_due": "days_before_checkin",
        "balance_due_days": 14,
    }
    payload.update(overrides)
    return payload


def milestone(sequence, amount, amount_type="percentage", due="at_booking", **extra):
    return {
        "sequence": sequence,
        "name": f"Payment {sequence}",
        "amount_type": amount_type,
        "amount": amount,
        "due": due,
        **extra,
    }


def test_valid_deposit_payload():
    terms = parse_terms("deposit", deposit_payload())
    assert isinstance(terms, DepositTerms)
    assert terms.deposit_type is AmountType.PERCENTAGE
    assert terms.deposit_amount == Decimal("30")
    assert terms.balance_due.timing is DueTiming.DAYS_BEFORE_CHECKIN
    assert terms.balance_due.days == 14


@pytest.mark.parametrize(
    "missing", ["deposit_type", "deposit_amount", "deposit_due", "balance_due"]
)
def test_deposit_requires_all_four_fields(missing):
    payload = deposit_payload()
    payload.pop(missing)
    with pytest.raises(ValidationException) as exc:
        parse_terms("deposit", payload)
    assert exc.value.rule_name == "MISSING_FIELD"
    assert missing in exc.value.details["validation_errors"]


def test_days_timing_without_offset_is_rejected():
    with pytest.raises(ValidationException) as exc:
        parse_terms("deposit", deposit_payload(balance_due_days=None))
    assert exc.value.rule_name == "MISSING_OFFSET"


def test_specific_date_timing_without_date_is_rejected():
    with pytest.raises(ValidationException) as exc:
        parse_terms("deposit", deposit_payload(deposit_due="specific_date"))
    assert exc.value.rule_name == "MISSING_DATE"


def test_negative_offset_is_rejected():
    with pytest.raises(ValidationException) as exc:
        parse_terms("deposit", deposit_payload(balance_due_days=-3))
    assert exc.value.rule_name == "INVALID_OFFSET"


def test_percentage_deposit_over_100_is_rejected():
    with pytest.raises(ValidationException) as exc:
        parse_terms("deposit", deposit_payload(deposit_amount=120))
    assert exc.value.rule_name == "PERCENTAGE_OVER_100"


def test_fixed_deposit_may_exceed_100():
    terms = parse_terms("deposit", deposit_payload(deposit_type="fixed_amount", deposit_amount=250))
    assert terms.deposit_amount == Decimal("250")


@pytest.mark.parametrize("amount", [0, -10])
def test_non_positive_deposit_is_rejected(amount):
    with pytest.raises(ValidationException) as exc:
        parse_terms("deposit", deposit_payload(deposit_amount=amount))
    assert exc.value.rule_name == "NON_POSITIVE_AMOUNT"


def test_schedule_fields_on_deposit_rule_are_rejected():
    payload = deposit_payload(schedule_config=[milestone(1, 100)])
    with pytest.raises(ValidationException) as exc:
        parse_terms("deposit", payload)
    assert exc.value.rule_name == "STRAY_FIELD"


def test_empty_schedule_is_rejected():
    with pytest.raises(ValidationException) as exc:
        parse_terms("payment_schedule", {"schedule_config": []})
    assert exc.value.rule_name == "EMPTY_SCHEDULE"


def test_duplicate_sequence_is_rejected():
    config = [milestone(1, 50), milestone(1, 50)]
    with pytest.raises(ValidationException) as exc:
        parse_terms("payment_schedule", {"schedule_config": config})
    assert exc.value.rule_name == "DUPLICATE_SEQUENCE"


def test_sequences_need_not_be_consecutive():
    config = [milestone(10, 40), milestone(20, 60, due="on_checkin")]
    terms = parse_terms("payment_schedule", {"schedule_config": config})
    assert [m.sequence for m in terms.milestones] == [10, 20]


def test_milestones_are_ordered_by_sequence():
    config = [milestone(3, 20), milestone(1, 50), milestone(2, 30)]
    terms = parse_terms("payment_schedule", {"schedule_config": config})
    assert isinstance(terms, ScheduleTerms)
    assert [m.sequence for m in terms.milestones] == [1, 2, 3]


@pytest.mark.parametrize(
    "amounts, valid",
    [
        (("50", "30", "20"), True),
        (("33.33", "33.33", "33.34"), True),
        (("33.33", "33.33", "33.33"), True),  # 99.99 is within tolerance
        (("33.33", "33.33", "33.32"), False),  # 99.98 is not
        (("50", "30", "30"), False),
    ],
)
def test_percentage_total_tolerance(amounts, valid):
    config = [milestone(i + 1, amount) for i, amount in enumerate(amounts)]
    terms, result = validate_terms("payment_schedule", {"schedule_config": config})
    assert result.is_valid is valid
    if not valid:
        assert terms is None
        assert result.rules == ["PERCENTAGE_SUM"]


def test_mixed_schedule_skips_percentage_total():
    config = [milestone(1, 200, amount_type="fixed_amount"), milestone(2, 50)]
    terms = parse_terms("payment_schedule", {"schedule_config": config})
    assert not terms.all_percentage


def test_milestone_days_timing_needs_offset():
    config = [milestone(1, 100, due="days_after_booking")]
    with pytest.raises(ValidationException) as exc:
        parse_terms("payment_schedule", {"schedule_config": config})
    assert exc.value.rule_name == "MISSING_OFFSET"
    assert "schedule_config[0].days" in exc.value.details["validation_errors"]


def test_flexible_rule_rejects_payload():
    assert isinstance(parse_terms("flexible", {}), FlexibleTerms)
    with pytest.raises(ValidationException) as exc:
        parse_terms("flexible", {"deposit_amount": 10})
    assert exc.value.rule_name == "STRAY_FIELD"


def test_unknown_rule_type():
    terms, result = validate_terms("installments", {})
    assert terms is None
    assert result.rules == ["INVALID_VALUE"]


def test_terms_to_columns_clears_other_variant():
    config = [milestone(1, 100)]
    columns = terms_to_columns(parse_terms("payment_schedule", {"schedule_config": config}))
    assert columns["rule_type"] is PaymentRuleType.PAYMENT_SCHEDULE
    assert columns["deposit_amount"] is None
    assert columns["schedule_config"][0]["amount"] == "100"


def test_applicability_window():
    assert validate_applicability(False, None, None).is_valid
    assert validate_applicability(True, date(2025, 6, 1), date(2025, 6, 1)).is_valid
    assert validate_applicability(True, None, date(2025, 6, 1)).rules == ["MISSING_DATE"]
    assert validate_applicability(True, date(2025, 7, 1), date(2025, 6, 1)).rules == [
        "INVALID_DATE_RANGE"
    ]
