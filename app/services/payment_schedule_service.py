# File: app/services/payment_schedule_service.py
"""
Payment schedule calculation and booking schedule tracking.

``expand`` turns a payment rule into concrete payment lines for one
booking. It is pure: the same rule and booking always give the same lines,
and nothing is read from or written to the database. Due dates are not
clamped, so a ``days_before_checkin`` offset longer than the booking lead
time yields a date in the past and the caller decides what to do with it.

``PaymentScheduleService`` persists the expansion for a booking and tracks
payments, overdue lines and cancellation against it.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.events import EventBus
from app.core.exceptions import (
    BusinessRuleException,
    EntityNotFoundException,
    ValidationException,
)
from app.db.models.base import utc_now
from app.db.models.enums import AmountType, DueTiming, MilestoneStatus
from app.db.models.payment_rule import PaymentRule
from app.db.models.payment_schedule import BookingPaymentMilestone
from app.repositories.payment_schedule_repository import (
    BookingPaymentMilestoneRepository,
)
from app.services.base_service import BaseService
from app.services.payment_terms import (
    DepositTerms,
    DueRule,
    FlexibleTerms,
    PaymentTerms,
    ScheduleTerms,
    terms_from_rule,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# Milestone states that still expect money
OPEN_MILESTONE_STATUSES = (
    MilestoneStatus.PENDING,
    MilestoneStatus.OVERDUE,
    MilestoneStatus.PARTIAL,
)


@dataclass(frozen=True)
class BookingContext:
    """The booking facts a schedule is computed from."""

    total_price: Decimal
    booking_date: date
    checkin_date: date
    currency: str = settings.DEFAULT_CURRENCY


@dataclass(frozen=True)
class ScheduleLine:
    """One computed payment: how much, when, and what it is called."""

    sequence: int
    label: str
    amount: Decimal
    due_date: date
    due_timing: DueTiming


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_due_date(due: DueRule, booking: BookingContext) -> date:
    """
    Compute the calendar date a due timing points at for a booking.

    Args:
        due: Timing with its offset or date
        booking: Booking dates

    Returns:
        The due date, possibly already in the past
    """
    if due.timing is DueTiming.AT_BOOKING:
        return booking.booking_date
    if due.timing is DueTiming.ON_CHECKIN:
        return booking.checkin_date
    if due.timing is DueTiming.DAYS_BEFORE_CHECKIN:
        return booking.checkin_date - timedelta(days=due.days)
    if due.timing is DueTiming.DAYS_AFTER_BOOKING:
        return booking.booking_date + timedelta(days=due.days)
    if due.timing is DueTiming.SPECIFIC_DATE:
        return due.specific_date
    raise ValueError(f"Unhandled due timing {due.timing}")


def _percentage_of(total: Decimal, percentage: Decimal) -> Decimal:
    return to_money(total * percentage / HUNDRED)


def _expand_deposit(terms: DepositTerms, booking: BookingContext) -> List[ScheduleLine]:
    total = to_money(booking.total_price)
    if terms.deposit_type is AmountType.PERCENTAGE:
        deposit = _percentage_of(total, terms.deposit_amount)
    else:
        # A fixed deposit larger than the booking is capped at the total
        deposit = min(to_money(terms.deposit_amount), total)
    return [
        ScheduleLine(
            sequence=1,
            label="Deposit",
            amount=deposit,
            due_date=resolve_due_date(terms.deposit_due, booking),
            due_timing=terms.deposit_due.timing,
        ),
        ScheduleLine(
            sequence=2,
            label="Balance",
            amount=total - deposit,
            due_date=resolve_due_date(terms.balance_due, booking),
            due_timing=terms.balance_due.timing,
        ),
    ]


def _expand_schedule(terms: ScheduleTerms, booking: BookingContext) -> List[ScheduleLine]:
    total = to_money(booking.total_price)
    lines = []
    for milestone in terms.milestones:
        if milestone.amount_type is AmountType.PERCENTAGE:
            amount = _percentage_of(total, milestone.amount)
        else:
            amount = to_money(milestone.amount)
        lines.append(
            ScheduleLine(
                sequence=milestone.sequence,
                label=milestone.name,
                amount=amount,
                due_date=resolve_due_date(milestone.due, booking),
                due_timing=milestone.due.timing,
            )
        )

    if terms.all_percentage and lines:
        # Last line absorbs rounding so the lines add up to the booking total
        allocated = sum((line.amount for line in lines[:-1]), Decimal("0.00"))
        last = lines[-1]
        lines[-1] = ScheduleLine(
            sequence=last.sequence,
            label=last.label,
            amount=total - allocated,
            due_date=last.due_date,
            due_timing=last.due_timing,
        )
    return lines


def expand(
    rule: Union[PaymentRule, PaymentTerms], booking: BookingContext
) -> List[ScheduleLine]:
    """
    Expand a payment rule into ordered payment lines for a booking.

    Args:
        rule: A PaymentRule or its terms
        booking: Total price, booking date and check-in date

    Returns:
        Lines in sequence order; empty for flexible rules
    """
    terms = rule if isinstance(rule, (DepositTerms, ScheduleTerms, FlexibleTerms)) else terms_from_rule(rule)
    if isinstance(terms, DepositTerms):
        return _expand_deposit(terms, booking)
    if isinstance(terms, ScheduleTerms):
        return _expand_schedule(terms, booking)
    return []


class PaymentScheduleService(BaseService[BookingPaymentMilestone]):
    """
    Service for booking payment schedules.

    Persists expanded schedules and records payments, overdue lines and
    cancellations against them.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[BookingPaymentMilestoneRepository] = None,
        payment_rule_service=None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize PaymentScheduleService with dependencies.

        Args:
            session: Database session for persistence operations
            repository: Optional milestone repository
            payment_rule_service: Service used to resolve a booking's rule
            event_bus: Optional event bus for publishing events
        """
        super().__init__(
            session,
            repository=repository or BookingPaymentMilestoneRepository(session),
            event_bus=event_bus,
        )
        if payment_rule_service is None:
            from app.services.payment_rule_service import PaymentRuleService

            payment_rule_service = PaymentRuleService(session, event_bus=event_bus)
        self.payment_rule_service = payment_rule_service

    def _not_found(self, id: int):
        return EntityNotFoundException("BookingPaymentMilestone", id)

    @staticmethod
    def _schedule_exists(booking_id: int) -> BusinessRuleException:
        return BusinessRuleException(
            f"Booking {booking_id} already has a payment schedule",
            rule_name="SCHEDULE_EXISTS",
            details={"booking_id": booking_id},
        )

    def preview_schedule(
        self, property_id: int, room_id: Optional[int], booking: BookingContext
    ) -> List[ScheduleLine]:
        """
        Resolve the applicable rule and expand it without persisting anything.

        Raises:
            NoApplicableRuleException: If no rule applies to the room
        """
        rule = self.payment_rule_service.resolve_rule(
            property_id, room_id, booking.checkin_date
        )
        return expand(rule, booking)

    def generate_schedule(
        self,
        booking_id: int,
        property_id: int,
        room_id: Optional[int],
        booking: BookingContext,
    ) -> List[BookingPaymentMilestone]:
        """
        Resolve the rule for a booking and persist its payment lines.

        The rule is resolved as of the check-in date. Flexible rules produce
        no lines.

        Args:
            booking_id: Booking the schedule belongs to
            property_id: Property of the booked room
            room_id: Booked room
            booking: Booking facts

        Returns:
            Persisted milestones in sequence order

        Raises:
            NoApplicableRuleException: If no rule applies to the room
            BusinessRuleException: If the booking already has a schedule
        """
        rule = self.payment_rule_service.resolve_rule(
            property_id, room_id, booking.checkin_date
        )
        lines = expand(rule, booking)

        try:
            with self.transaction():
                if self.repository.list_for_booking(booking_id):
                    raise self._schedule_exists(booking_id)
                milestones = [
                    self.repository.create(
                        {
                            "booking_id": booking_id,
                            "milestone_sequence": line.sequence,
                            "milestone_name": line.label,
                            "amount_due": line.amount,
                            "currency": booking.currency,
                            "due_date": line.due_date,
                            "due_type": line.due_timing,
                            "status": MilestoneStatus.PENDING,
                            "amount_paid": Decimal("0.00"),
                            "created_from_rule_id": rule.id,
                        }
                    )
                    for line in lines
                ]
        except IntegrityError as e:
            # A concurrent generate for the same booking trips the sequence constraint
            if "milestone_sequence" not in str(e.orig):
                raise
            raise self._schedule_exists(booking_id) from e

        logger.info(
            f"Generated {len(milestones)} payment milestone(s) for booking {booking_id} "
            f"from rule {rule.id}"
        )
        return milestones

    def get_schedule(self, booking_id: int) -> List[BookingPaymentMilestone]:
        return self.repository.list_for_booking(booking_id)

    def get_schedule_summary(self, booking_id: int) -> Dict[str, Any]:
        """
        Totals for a booking's schedule.

        Returns:
            Dictionary with total_due, total_paid, outstanding, overdue_count,
            next_due_date and next_due_amount; cancelled lines are ignored
        """
        milestones = [
            m for m in self.repository.list_for_booking(booking_id)
            if m.status is not MilestoneStatus.CANCELLED
        ]
        total_due = sum((Decimal(m.amount_due) for m in milestones), Decimal("0.00"))
        total_paid = sum((Decimal(m.amount_paid or 0) for m in milestones), Decimal("0.00"))
        open_lines = [m for m in milestones if m.status in OPEN_MILESTONE_STATUSES]
        next_line = min(open_lines, key=lambda m: (m.due_date, m.milestone_sequence), default=None)
        return {
            "booking_id": booking_id,
            "milestone_count": len(milestones),
            "total_due": total_due,
            "total_paid": total_paid,
            "outstanding": max(total_due - total_paid, Decimal("0.00")),
            "overdue_count": sum(1 for m in milestones if m.status is MilestoneStatus.OVERDUE),
            "next_due_date": next_line.due_date if next_line else None,
            "next_due_amount": next_line.amount_outstanding if next_line else None,
        }

    def record_payment(
        self,
        milestone_id: int,
        amount: Decimal,
        paid_at: Optional[datetime] = None,
    ) -> BookingPaymentMilestone:
        """
        Record money received against a milestone.

        The milestone becomes ``paid`` once the amount received covers the
        amount due, ``partial`` otherwise.

        Raises:
            ValidationException: If the amount is not positive
            BusinessRuleException: If the milestone is paid or cancelled
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationException(
                "Payment amount must be greater than zero",
                {"amount": ["Must be greater than zero"]},
                rule_name="NON_POSITIVE_AMOUNT",
            )

        with self.transaction():
            milestone = self.get_entity_or_404(milestone_id)
            if milestone.status not in OPEN_MILESTONE_STATUSES:
                raise BusinessRuleException(
                    f"Milestone {milestone_id} is {milestone.status.value} and accepts no payments",
                    rule_name="MILESTONE_CLOSED",
                    details={"milestone_id": milestone_id, "status": milestone.status.value},
                )
            milestone.amount_paid = to_money(Decimal(milestone.amount_paid or 0) + amount)
            if milestone.amount_paid >= Decimal(milestone.amount_due):
                milestone.status = MilestoneStatus.PAID
                milestone.paid_at = paid_at or utc_now()
            else:
                milestone.status = MilestoneStatus.PARTIAL
            self.session.flush()

        logger.info(
            f"Recorded payment of {amount} on milestone {milestone_id}; status {milestone.status.value}"
        )
        return milestone

    def mark_overdue_milestones(self, today: Optional[date] = None) -> int:
        """
        Flag pending milestones whose due date has passed.

        Args:
            today: Reference date, defaults to the current UTC date

        Returns:
            Number of milestones marked overdue
        """
        today = today or utc_now().date()
        with self.transaction():
            milestones = self.repository.list_pending_due_before(today)
            for milestone in milestones:
                milestone.status = MilestoneStatus.OVERDUE
            self.session.flush()

        if milestones:
            logger.info(f"Marked {len(milestones)} milestone(s) overdue as of {today}")
        return len(milestones)

    def cancel_booking_schedule(self, booking_id: int) -> int:
        """
        Cancel every open milestone of a booking.

        Paid milestones are left as they are.

        Returns:
            Number of milestones cancelled
        """
        with self.transaction():
            cancelled = 0
            for milestone in self.repository.list_for_booking(booking_id):
                if milestone.status in OPEN_MILESTONE_STATUSES:
                    milestone.status = MilestoneStatus.CANCELLED
                    cancelled += 1
            self.session.flush()

        logger.info(f"Cancelled {cancelled} milestone(s) for booking {booking_id}")
        return cancelled
