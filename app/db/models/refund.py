# File: app/db/models/refund.py
"""
Refund request models for LodgePay.

A refund request moves through the states in
``app.services.refund_state_machine``. Status history rows and comments are
two separate append-only sources; the activity ledger merges them at read
time. Documents are soft-deleted only.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    ForeignKey,
    DateTime,
    Text,
    Boolean,
    Numeric,
    JSON,
    Enum,
)
from sqlalchemy.orm import relationship, validates

from app.db.models.base import AbstractBase, TimestampMixin, utc_now
from app.db.models.enums import RefundStatus, RefundDocumentType


class RefundRequest(AbstractBase, TimestampMixin):
    """
    A guest's request to have money returned for a booking.

    Monetary fields are populated once as the request advances and are never
    overwritten afterwards.

    Attributes:
        booking_id: Booking the refund is for
        requested_by: User ID of the requesting guest
        status: Current lifecycle state
        requested_amount: Amount asked for, fixed at creation
        approved_amount: Amount approved by staff
        refunded_amount: Amount the payment provider returned
        payment_reference: Reference of the original payment, sent to the provider
        gateway_refund_id: Provider reference once the refund is accepted
        credit_memo_id: Credit memo issued on completion
        version: Revision counter; every transition is a compare-and-swap on it
    """

    __tablename__ = "refund_requests"

    booking_id = Column(Integer, nullable=False, index=True)
    requested_by = Column(Integer, nullable=False, index=True)
    status = Column(Enum(RefundStatus), nullable=False, default=RefundStatus.REQUESTED)
    currency = Column(String(3), nullable=False, default="USD")
    reason = Column(Text)

    requested_amount = Column(Numeric(12, 2), nullable=False)
    approved_amount = Column(Numeric(12, 2))
    refunded_amount = Column(Numeric(12, 2))

    review_notes = Column(Text)
    reviewed_by = Column(Integer)
    reviewed_at = Column(DateTime)
    processed_by = Column(Integer)
    processed_at = Column(DateTime)
    completed_at = Column(DateTime)

    payment_reference = Column(String(255))
    gateway_refund_id = Column(String(255), index=True)
    failure_reason = Column(Text)
    credit_memo_id = Column(String(255))

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    status_history = relationship(
        "RefundStatusHistory",
        back_populates="refund_request",
        order_by="RefundStatusHistory.id",
    )
    comments = relationship(
        "RefundComment", back_populates="refund_request", order_by="RefundComment.id"
    )
    documents = relationship(
        "RefundDocument", back_populates="refund_request", order_by="RefundDocument.id"
    )

    @validates("requested_amount")
    def validate_requested_amount(self, key, amount):
        if amount is None or amount <= 0:
            raise ValueError("Requested amount must be positive")
        return amount

    def __repr__(self) -> str:
        return (
            f"<RefundRequest(id={self.id}, booking_id={self.booking_id}, "
            f"status='{self.status}', requested={self.requested_amount})>"
        )


class RefundStatusHistory(AbstractBase):
    """Append-only record of one status change."""

    __tablename__ = "refund_status_history"

    refund_request_id = Column(
        Integer, ForeignKey("refund_requests.id"), nullable=False, index=True
    )
    from_status = Column(Enum(RefundStatus))
    to_status = Column(Enum(RefundStatus), nullable=False)
    event = Column(String(50))
    changed_by = Column(Integer, nullable=False)
    changed_at = Column(DateTime, default=utc_now, nullable=False)
    change_reason = Column(Text)
    details = Column(JSON)

    refund_request = relationship("RefundRequest", back_populates="status_history")


class RefundComment(AbstractBase):
    """Immutable comment on a refund request."""

    __tablename__ = "refund_comments"

    refund_request_id = Column(
        Integer, ForeignKey("refund_requests.id"), nullable=False, index=True
    )
    user_id = Column(Integer, nullable=False)
    comment_text = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    refund_request = relationship("RefundRequest", back_populates="comments")


class RefundDocument(AbstractBase, TimestampMixin):
    """
    Evidence attached to a refund request.

    Only metadata is stored; ``storage_path`` points at wherever the caller
    put the file. Verification and deletion are compare-and-swap updates on
    ``version``.
    """

    __tablename__ = "refund_documents"

    refund_request_id = Column(
        Integer, ForeignKey("refund_requests.id"), nullable=False, index=True
    )
    uploaded_by = Column(Integer, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(100), nullable=False)
    storage_path = Column(String(1024), nullable=False)
    document_type = Column(Enum(RefundDocumentType), nullable=False)
    description = Column(Text)
    uploaded_at = Column(DateTime, default=utc_now, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(Integer)
    verified_at = Column(DateTime)
    deleted_at = Column(DateTime)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    refund_request = relationship("RefundRequest", back_populates="documents")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
