# File: app/schemas/refund.py
"""
Refund schemas for the LodgePay API.

This module contains Pydantic models for refund requests, their
transitions, comments, documents and the merged activity timeline.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, validator

from app.core.config import settings
from app.db.models.enums import RefundDocumentType, RefundEvent, RefundStatus


class RefundRequestCreate(BaseModel):
    """
    Schema for submitting a refund request.
    """

    booking_id: int = Field(..., description="Booking the refund is for")
    requested_amount: Decimal = Field(..., description="Amount to refund", gt=0)
    currency: str = Field(settings.DEFAULT_CURRENCY, description="ISO currency code", max_length=3)
    reason: Optional[str] = Field(None, description="Why the guest wants a refund")
    payment_reference: Optional[str] = Field(None, description="Reference of the original payment")
    available_amount: Optional[Decimal] = Field(
        None, description="Most the booking can refund; requested_amount may not exceed it"
    )
    requested_by: Optional[int] = Field(
        None, description="Guest the request is filed for; staff only"
    )


class RefundTransitionRequest(BaseModel):
    """
    Schema for applying an event to a refund request.

    Which payload fields are required depends on the event.
    """

    event: RefundEvent = Field(..., description="Event to apply")
    approved_amount: Optional[Decimal] = Field(None, description="Required for approve")
    review_notes: Optional[str] = Field(None, description="Required for reject")
    refunded_amount: Optional[Decimal] = Field(None, description="Required for complete")
    credit_memo_id: Optional[str] = Field(None, description="Required for complete")
    failure_reason: Optional[str] = Field(None, description="Required for fail")
    change_reason: Optional[str] = Field(None, description="Recorded on the history row")

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"event", "change_reason"}, exclude_none=True)


class ProviderCallback(BaseModel):
    """
    Asynchronous refund outcome reported by the payment provider.
    """

    succeeded: bool = Field(..., description="Whether the money was returned")
    refund_id: Optional[int] = Field(None, description="Refund request ID, if echoed back")
    gateway_refund_id: Optional[str] = Field(None, description="Provider reference")
    refunded_amount: Optional[Decimal] = Field(None, description="Amount returned")
    credit_memo_id: Optional[str] = Field(None, description="Credit memo issued")
    reason: Optional[str] = Field(None, description="Failure reason")


class RefundRequestResponse(BaseModel):
    """
    Schema for refund request responses.
    """

    id: int
    booking_id: int
    requested_by: int
    status: RefundStatus
    currency: str
    reason: Optional[str] = None
    requested_amount: Decimal
    approved_amount: Optional[Decimal] = None
    refunded_amount: Optional[Decimal] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    failure_reason: Optional[str] = None
    credit_memo_id: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    id: int
    from_status: Optional[RefundStatus] = None
    to_status: RefundStatus
    event: Optional[str] = None
    changed_by: int
    changed_at: datetime
    change_reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class CommentCreate(BaseModel):
    comment_text: str = Field(..., description="Comment body")
    is_internal: bool = Field(False, description="Staff-only note; ignored for guests")

    @validator("comment_text")
    def comment_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Comment cannot be empty")
        return v


class CommentResponse(BaseModel):
    id: int
    refund_request_id: int
    user_id: int
    comment_text: str
    is_internal: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityResponse(BaseModel):
    """One entry of a request's merged timeline."""

    activity_type: str = Field(..., description="status_change or comment")
    activity_id: int
    activity_at: datetime
    actor_id: int
    description: str
    additional_info: Optional[str] = None
    is_internal: bool = False

    class Config:
        from_attributes = True


class DocumentCreate(BaseModel):
    """
    Metadata for a document the client has already stored.
    """

    file_name: str = Field(..., description="Original file name")
    file_size: int = Field(..., description="Size in bytes")
    file_type: str = Field(..., description="MIME type")
    storage_path: str = Field(..., description="Where the file was stored")
    document_type: RefundDocumentType = Field(..., description="Kind of evidence")
    description: Optional[str] = Field(None, description="Optional description")


class DocumentResponse(BaseModel):
    id: int
    refund_request_id: int
    uploaded_by: int
    file_name: str
    file_size: int
    file_type: str
    storage_path: str
    document_type: RefundDocumentType
    description: Optional[str] = None
    uploaded_at: datetime
    is_verified: bool
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RefundRequestDetail(RefundRequestResponse):
    """A request with its allowed next events."""

    allowed_events: List[RefundEvent] = Field(default_factory=list)


class BookingRefundSummary(BaseModel):
    """Refund totals and open/completed requests for one booking."""

    booking_id: int
    total_paid: Optional[Decimal] = Field(None, description="Amount paid, when supplied")
    total_refunded: Decimal = Field(..., description="Sum refunded by completed requests")
    available_for_refund: Optional[Decimal] = None
    refund_status: Literal["none", "partial", "full"]
    active_refund_requests: int
    pending_refund_requests: List[RefundRequestResponse] = Field(default_factory=list)
    completed_refund_requests: List[RefundRequestResponse] = Field(default_factory=list)
