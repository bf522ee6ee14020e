# File: app/repositories/refund_repository.py
"""
Repository for refund requests and their status history.

This module provides data access for refund requests, including the
active-request lookup that enforces one open request per booking, and the
append-only status history.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, desc, func
from sqlalchemy.orm import Session

from app.db.models.enums import RefundStatus
from app.db.models.refund import RefundRequest, RefundStatusHistory
from app.repositories.base_repository import BaseRepository

# Statuses in which a request still counts as open for its booking
ACTIVE_STATUSES = (
    RefundStatus.REQUESTED,
    RefundStatus.UNDER_REVIEW,
    RefundStatus.APPROVED,
    RefundStatus.PROCESSING,
)


class RefundRequestRepository(BaseRepository[RefundRequest]):
    """
    Repository for RefundRequest entity operations.
    """

    model = RefundRequest

    def __init__(self, session: Session):
        super().__init__(session)

    def get_active_for_booking(self, booking_id: int) -> Optional[RefundRequest]:
        """
        Get the open refund request for a booking, if any.

        Args:
            booking_id: ID of the booking

        Returns:
            The non-terminal request for the booking, or None
        """
        stmt = (
            select(RefundRequest)
            .where(
                RefundRequest.booking_id == booking_id,
                RefundRequest.status.in_(ACTIVE_STATUSES),
            )
            .order_by(desc(RefundRequest.id))
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_gateway_refund_id(self, gateway_refund_id: str) -> Optional[RefundRequest]:
        stmt = select(RefundRequest).where(
            RefundRequest.gateway_refund_id == gateway_refund_id
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def search(
        self,
        status: Optional[RefundStatus] = None,
        booking_id: Optional[int] = None,
        requested_by: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[RefundRequest]:
        """
        List refund requests, newest first.

        Args:
            status: Only requests in this status
            booking_id: Only requests for this booking
            requested_by: Only requests submitted by this user
            skip: Number of records to skip
            limit: Maximum number of records to return
        """
        stmt = select(RefundRequest)
        if status is not None:
            stmt = stmt.where(RefundRequest.status == status)
        if booking_id is not None:
            stmt = stmt.where(RefundRequest.booking_id == booking_id)
        if requested_by is not None:
            stmt = stmt.where(RefundRequest.requested_by == requested_by)
        stmt = stmt.order_by(desc(RefundRequest.created_at), desc(RefundRequest.id))
        stmt = stmt.offset(skip).limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def list_for_booking(self, booking_id: int) -> List[RefundRequest]:
        """Every request for a booking, newest first."""
        stmt = (
            select(RefundRequest)
            .where(RefundRequest.booking_id == booking_id)
            .order_by(desc(RefundRequest.created_at), desc(RefundRequest.id))
        )
        return list(self.session.execute(stmt).scalars().all())

    def total_refunded(self, booking_id: int) -> Decimal:
        """
        Sum of refunded amounts over the booking's completed requests.

        Args:
            booking_id: ID of the booking

        Returns:
            The total, zero when nothing has been refunded
        """
        stmt = select(func.coalesce(func.sum(RefundRequest.refunded_amount), 0)).where(
            RefundRequest.booking_id == booking_id,
            RefundRequest.status == RefundStatus.COMPLETED,
        )
        return Decimal(str(self.session.execute(stmt).scalar_one()))


class RefundStatusHistoryRepository(BaseRepository[RefundStatusHistory]):
    """Append-only access to status history rows."""

    model = RefundStatusHistory

    def list_for_request(self, refund_id: int) -> List[RefundStatusHistory]:
        """History rows for a request in the order they were written."""
        stmt = (
            select(RefundStatusHistory)
            .where(RefundStatusHistory.refund_request_id == refund_id)
            .order_by(RefundStatusHistory.id)
        )
        return list(self.session.execute(stmt).scalars().all())
