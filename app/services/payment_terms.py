# File: app/services/payment_terms.py
"""
Typed payment-rule payloads.

A payment rule carries exactly one payload, selected by its ``rule_type``:

- ``DepositTerms``: a deposit (percentage or fixed) plus a balance, each with
  its own due timing.
- ``ScheduleTerms``: one or more milestones ordered by sequence.
- ``FlexibleTerms``: nothing; the guest pays any time before checkout.

``parse_terms`` validates raw input for one variant and builds its terms
object. Input that belongs to another variant is rejected rather than
stored. Every error names the invariant it violates so callers can report
exactly what to fix.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from app.core.config import settings
from app.core.validation import (
    ValidationResult,
    coerce_date,
    coerce_decimal,
    coerce_enum,
)
from app.db.models.enums import AmountType, DueTiming, PaymentRuleType

# Invariant names reported in ValidationException.details["rule_name"]
MISSING_FIELD = "MISSING_FIELD"
INVALID_VALUE = "INVALID_VALUE"
NON_POSITIVE_AMOUNT = "NON_POSITIVE_AMOUNT"
PERCENTAGE_OVER_100 = "PERCENTAGE_OVER_100"
PERCENTAGE_SUM = "PERCENTAGE_SUM"
EMPTY_SCHEDULE = "EMPTY_SCHEDULE"
INVALID_SEQUENCE = "INVALID_SEQUENCE"
DUPLICATE_SEQUENCE = "DUPLICATE_SEQUENCE"
MISSING_OFFSET = "MISSING_OFFSET"
INVALID_OFFSET = "INVALID_OFFSET"
MISSING_DATE = "MISSING_DATE"
INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
STRAY_FIELD = "STRAY_FIELD"

DEPOSIT_FIELDS = (
    "deposit_type",
    "deposit_amount",
    "deposit_due",
    "deposit_due_days",
    "deposit_due_date",
    "balance_due",
    "balance_due_days",
    "balance_due_date",
)
SCHEDULE_FIELDS = ("schedule_config",)
PAYLOAD_FIELDS = DEPOSIT_FIELDS + SCHEDULE_FIELDS

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class DueRule:
    """A due timing with the offset or date it needs."""

    timing: DueTiming
    days: Optional[int] = None
    specific_date: Optional[date] = None


@dataclass(frozen=True)
class DepositTerms:
    rule_type: ClassVar[PaymentRuleType] = PaymentRuleType.DEPOSIT

    deposit_type: AmountType
    deposit_amount: Decimal
    deposit_due: DueRule
    balance_due: DueRule


@dataclass(frozen=True)
class Milestone:
    sequence: int
    name: str
    amount_type: AmountType
    amount: Decimal
    due: DueRule

    def to_config(self) -> Dict[str, Any]:
        """JSON-safe form stored in ``PaymentRule.schedule_config``."""
        return {
            "sequence": self.sequence,
            "name": self.name,
            "amount_type": self.amount_type.value,
            "amount": format(self.amount.normalize(), "f"),
            "due": self.due.timing.value,
            "days": self.due.days,
            "specific_date": (
                self.due.specific_date.isoformat() if self.due.specific_date else None
            ),
        }


@dataclass(frozen=True)
class ScheduleTerms:
    rule_type: ClassVar[PaymentRuleType] = PaymentRuleType.PAYMENT_SCHEDULE

    milestones: Tuple[Milestone, ...]

    @property
    def all_percentage(self) -> bool:
        return all(m.amount_type is AmountType.PERCENTAGE for m in self.milestones)


@dataclass(frozen=True)
class FlexibleTerms:
    rule_type: ClassVar[PaymentRuleType] = PaymentRuleType.FLEXIBLE


PaymentTerms = Union[DepositTerms, ScheduleTerms, FlexibleTerms]


def _is_set(value: Any) -> bool:
    return value is not None and value != [] and value != ""


def _parse_due(
    result: ValidationResult,
    field: str,
    timing_value: Any,
    days_value: Any,
    date_value: Any,
    days_field: str,
    date_field: str,
) -> Optional[DueRule]:
    if timing_value is None:
        result.add_error(field, "Due timing is required", MISSING_FIELD)
        return None
    timing = coerce_enum(DueTiming, timing_value)
    if timing is None:
        result.add_error(field, f"Unknown due timing '{timing_value}'", INVALID_VALUE)
        return None

    days = None
    specific_date = None
    if timing.requires_days:
        if days_value is None:
            result.add_error(
                days_field, f"'{timing.value}' requires a number of days", MISSING_OFFSET
            )
            return None
        if isinstance(days_value, bool) or not isinstance(days_value, int) or days_value < 0:
            result.add_error(
                days_field, "Days must be a non-negative whole number", INVALID_OFFSET
            )
            return None
        days = days_value
    elif timing.requires_date:
        if date_value is None:
            result.add_error(date_field, "'specific_date' requires a date", MISSING_DATE)
            return None
        specific_date = coerce_date(date_value)
        if specific_date is None:
            result.add_error(date_field, f"Invalid date '{date_value}'", INVALID_VALUE)
            return None
    return DueRule(timing=timing, days=days, specific_date=specific_date)


def _parse_amount(
    result: ValidationResult, field: str, amount_type: Optional[AmountType], raw: Any
) -> Optional[Decimal]:
    if raw is None:
        result.add_error(field, "Amount is required", MISSING_FIELD)
        return None
    amount = coerce_decimal(raw)
    if amount is None or not amount.is_finite():
        result.add_error(field, f"Invalid amount '{raw}'", INVALID_VALUE)
        return None
    if amount <= 0:
        result.add_error(field, "Amount must be greater than zero", NON_POSITIVE_AMOUNT)
        return None
    if amount_type is AmountType.PERCENTAGE and amount > HUNDRED:
        result.add_error(field, "Percentage cannot exceed 100", PERCENTAGE_OVER_100)
        return None
    return amount


def _parse_amount_type(result: ValidationResult, field: str, raw: Any) -> Optional[AmountType]:
    if raw is None:
        result.add_error(field, "Amount type is required", MISSING_FIELD)
        return None
    amount_type = coerce_enum(AmountType, raw)
    if amount_type is None:
        result.add_error(field, f"Unknown amount type '{raw}'", INVALID_VALUE)
    return amount_type


def _reject_stray(
    result: ValidationResult,
    rule_type: PaymentRuleType,
    payload: Mapping[str, Any],
    fields: Tuple[str, ...],
) -> None:
    for field in fields:
        if _is_set(payload.get(field)):
            result.add_error(
                field, f"Not allowed on a '{rule_type.value}' rule", STRAY_FIELD
            )


def _parse_deposit(payload: Mapping[str, Any], result: ValidationResult) -> Optional[DepositTerms]:
    _reject_stray(result, PaymentRuleType.DEPOSIT, payload, SCHEDULE_FIELDS)

    deposit_type = _parse_amount_type(result, "deposit_type", payload.get("deposit_type"))
    amount = _parse_amount(result, "deposit_amount", deposit_type, payload.get("deposit_amount"))
    deposit_due = _parse_due(
        result,
        "deposit_due",
        payload.get("deposit_due"),
        payload.get("deposit_due_days"),
        payload.get("deposit_due_date"),
        "deposit_due_days",
        "deposit_due_date",
    )
    balance_due = _parse_due(
        result,
        "balance_due",
        payload.get("balance_due"),
        payload.get("balance_due_days"),
        payload.get("balance_due_date"),
        "balance_due_days",
        "balance_due_date",
    )
    if not result.is_valid:
        return None
    return DepositTerms(
        deposit_type=deposit_type,
        deposit_amount=amount,
        deposit_due=deposit_due,
        balance_due=balance_due,
    )


def _parse_schedule(payload: Mapping[str, Any], result: ValidationResult) -> Optional[ScheduleTerms]:
    _reject_stray(result, PaymentRuleType.PAYMENT_SCHEDULE, payload, DEPOSIT_FIELDS)

    config = payload.get("schedule_config")
    if not isinstance(config, (list, tuple)) or len(config) == 0:
        result.add_error(
            "schedule_config", "A payment schedule needs at least one milestone", EMPTY_SCHEDULE
        )
        return None

    milestones: List[Milestone] = []
    seen_sequences = set()
    for index, raw in enumerate(config):
        prefix = f"schedule_config[{index}]"
        if not isinstance(raw, Mapping):
            result.add_error(prefix, "Milestone must be an object", INVALID_VALUE)
            continue
        local = ValidationResult()

        sequence = raw.get("sequence")
        if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
            local.add_error(
                f"{prefix}.sequence", "Sequence must be a positive whole number", INVALID_SEQUENCE
            )
        elif sequence in seen_sequences:
            local.add_error(
                f"{prefix}.sequence", f"Sequence {sequence} is used more than once", DUPLICATE_SEQUENCE
            )
        else:
            seen_sequences.add(sequence)

        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            local.add_error(f"{prefix}.name", "Milestone name is required", MISSING_FIELD)

        amount_type = _parse_amount_type(local, f"{prefix}.amount_type", raw.get("amount_type"))
        amount = _parse_amount(local, f"{prefix}.amount", amount_type, raw.get("amount"))
        due = _parse_due(
            local,
            f"{prefix}.due",
            raw.get("due"),
            raw.get("days"),
            raw.get("specific_date"),
            f"{prefix}.days",
            f"{prefix}.specific_date",
        )

        result.merge(local)
        if local.is_valid:
            milestones.append(
                Milestone(
                    sequence=sequence,
                    name=name.strip(),
                    amount_type=amount_type,
                    amount=amount,
                    due=due,
                )
            )

    if not result.is_valid:
        return None

    terms = ScheduleTerms(milestones=tuple(sorted(milestones, key=lambda m: m.sequence)))
    if terms.all_percentage:
        total = sum((m.amount for m in terms.milestones), Decimal("0"))
        if abs(total - HUNDRED) > settings.PERCENTAGE_TOLERANCE:
            result.add_error(
                "schedule_config",
                f"Milestone percentages must total 100%, got {total}%",
                PERCENTAGE_SUM,
            )
            return None
    return terms


def _parse_flexible(payload: Mapping[str, Any], result: ValidationResult) -> Optional[FlexibleTerms]:
    _reject_stray(result, PaymentRuleType.FLEXIBLE, payload, PAYLOAD_FIELDS)
    if not result.is_valid:
        return None
    return FlexibleTerms()


_PARSERS = {
    PaymentRuleType.DEPOSIT: _parse_deposit,
    PaymentRuleType.PAYMENT_SCHEDULE: _parse_schedule,
    PaymentRuleType.FLEXIBLE: _parse_flexible,
}


def validate_terms(
    rule_type: Any, payload: Mapping[str, Any]
) -> Tuple[Optional[PaymentTerms], ValidationResult]:
    """
    Validate a payload for a rule type without raising.

    Args:
        rule_type: PaymentRuleType or its string value
        payload: Raw payload fields (deposit columns or ``schedule_config``)

    Returns:
        The parsed terms (None when invalid) and the collected errors
    """
    result = ValidationResult()
    tag = coerce_enum(PaymentRuleType, rule_type)
    if tag is None:
        result.add_error(
            "rule_type",
            f"rule_type must be one of {', '.join(t.value for t in PaymentRuleType)}",
            MISSING_FIELD if rule_type is None else INVALID_VALUE,
        )
        return None, result
    return _PARSERS[tag](payload, result), result


def parse_terms(rule_type: Any, payload: Mapping[str, Any]) -> PaymentTerms:
    """
    Validate a payload and build the terms for its variant.

    Raises:
        ValidationException: Naming the first violated invariant
    """
    terms, result = validate_terms(rule_type, payload)
    result.raise_if_invalid("Invalid payment rule")
    return terms


def validate_applicability(
    applies_to_dates: bool, start_date: Optional[date], end_date: Optional[date]
) -> ValidationResult:
    """Check the date window of a rule that only applies between two dates."""
    result = ValidationResult()
    if not applies_to_dates:
        return result
    if start_date is None:
        result.add_error("start_date", "Start date is required when applies_to_dates is set", MISSING_DATE)
    if end_date is None:
        result.add_error("end_date", "End date is required when applies_to_dates is set", MISSING_DATE)
    if start_date and end_date and start_date > end_date:
        result.add_error("end_date", "End date must be on or after the start date", INVALID_DATE_RANGE)
    return result


def terms_to_columns(terms: PaymentTerms) -> Dict[str, Any]:
    """
    Column values for a rule holding ``terms``.

    Every payload column is present; those of other variants are None so a
    type change never leaves stray values behind.
    """
    columns: Dict[str, Any] = {field: None for field in PAYLOAD_FIELDS}
    columns["rule_type"] = terms.rule_type
    if isinstance(terms, DepositTerms):
        columns.update(
            deposit_type=terms.deposit_type,
            deposit_amount=terms.deposit_amount,
            deposit_due=terms.deposit_due.timing,
            deposit_due_days=terms.deposit_due.days,
            deposit_due_date=terms.deposit_due.specific_date,
            balance_due=terms.balance_due.timing,
            balance_due_days=terms.balance_due.days,
            balance_due_date=terms.balance_due.specific_date,
        )
    elif isinstance(terms, ScheduleTerms):
        columns["schedule_config"] = [m.to_config() for m in terms.milestones]
    return columns


def payload_from_rule(rule) -> Dict[str, Any]:
    """Raw payload fields currently stored on a rule."""
    return {field: getattr(rule, field) for field in PAYLOAD_FIELDS}


def terms_from_rule(rule) -> PaymentTerms:
    """
    Build the typed terms for a persisted rule.

    Raises:
        ValidationException: If the stored payload is inconsistent
    """
    return parse_terms(rule.rule_type, payload_from_rule(rule))
