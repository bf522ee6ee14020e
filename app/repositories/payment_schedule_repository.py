# File: app/repositories/payment_schedule_repository.py
"""
Repository for persisted booking payment milestones.
"""

from datetime import date
from typing import List

from sqlalchemy import select, func

from app.db.models.enums import MilestoneStatus
from app.db.models.payment_schedule import BookingPaymentMilestone
from app.repositories.base_repository import BaseRepository


class BookingPaymentMilestoneRepository(BaseRepository[BookingPaymentMilestone]):
    """Data access for booking payment milestones."""

    model = BookingPaymentMilestone

    def list_for_booking(self, booking_id: int) -> List[BookingPaymentMilestone]:
        """
        Get a booking's milestones in sequence order.

        Args:
            booking_id: Booking ID

        Returns:
            Milestones ordered by ``milestone_sequence``
        """
        stmt = (
            select(BookingPaymentMilestone)
            .where(BookingPaymentMilestone.booking_id == booking_id)
            .order_by(BookingPaymentMilestone.milestone_sequence)
        )
        return list(self.session.execute(stmt).scalars().all())

    def count_for_rule(self, rule_id: int) -> int:
        """Number of distinct bookings whose schedule came from a rule."""
        stmt = select(
            func.count(func.distinct(BookingPaymentMilestone.booking_id))
        ).where(BookingPaymentMilestone.created_from_rule_id == rule_id)
        return self.session.execute(stmt).scalar_one()

    def list_pending_due_before(self, cutoff: date) -> List[BookingPaymentMilestone]:
        """
        Get pending milestones whose due date is strictly before ``cutoff``.

        Args:
            cutoff: First date that is not yet overdue
        """
        stmt = select(BookingPaymentMilestone).where(
            BookingPaymentMilestone.status == MilestoneStatus.PENDING,
            BookingPaymentMilestone.due_date < cutoff,
        )
        return list(self.session.execute(stmt).scalars().all())
