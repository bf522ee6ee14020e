# File: app/db/models/payment_schedule.py
"""
Booking payment schedule model.

Rows are generated from a payment rule when a booking is confirmed and then
track what the guest has actually paid against each milestone.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    String,
    Integer,
    ForeignKey,
    Date,
    DateTime,
    Numeric,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db.models.base import AbstractBase, TimestampMixin
from app.db.models.enums import DueTiming, MilestoneStatus


class BookingPaymentMilestone(AbstractBase, TimestampMixin):
    """
    One payment line of a booking's schedule.

    Attributes:
        booking_id: Booking the line belongs to
        milestone_sequence: 1-based position in the schedule
        milestone_name: Label shown to the guest ("Deposit", "Balance", ...)
        amount_due: Amount owed for this line
        due_date: Resolved calendar due date
        due_type: Timing the due date was resolved from
        status: Payment progress of the line
        amount_paid: Sum of payments recorded against the line
        created_from_rule_id: Payment rule the line was expanded from
    """

    __tablename__ = "booking_payment_milestones"
    __table_args__ = (
        UniqueConstraint(
            "booking_id", "milestone_sequence", name="uq_booking_milestone_sequence"
        ),
    )

    booking_id = Column(Integer, nullable=False, index=True)
    milestone_sequence = Column(Integer, nullable=False)
    milestone_name = Column(String(100), nullable=False)
    amount_due = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    due_date = Column(Date, nullable=False)
    due_type = Column(Enum(DueTiming), nullable=False)
    status = Column(Enum(MilestoneStatus), nullable=False, default=MilestoneStatus.PENDING)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    paid_at = Column(DateTime)
    created_from_rule_id = Column(
        Integer, ForeignKey("payment_rules.id"), nullable=True, index=True
    )

    payment_rule = relationship("PaymentRule")

    @property
    def amount_outstanding(self) -> Decimal:
        return max(Decimal(self.amount_due) - Decimal(self.amount_paid or 0), Decimal("0.00"))

    def __repr__(self) -> str:
        return (
            f"<BookingPaymentMilestone(booking_id={self.booking_id}, "
            f"sequence={self.milestone_sequence}, status='{self.status}')>"
        )
