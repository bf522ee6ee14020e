# File: app/api/endpoints/refunds.py
"""
Refund API endpoints for LodgePay.

This module provides endpoints for submitting refund requests, moving them
through review and payout, and the comments, documents and activity
timeline attached to each request.
"""

from decimal import Decimal
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from app.api.deps import (
    get_current_actor,
    get_refund_activity_service,
    get_refund_document_service,
    get_refund_service,
    require_staff,
)
from app.core.security import Actor
from app.db.models.enums import RefundEvent, RefundStatus
from app.schemas.refund import (
    ActivityResponse,
    BookingRefundSummary,
    CommentCreate,
    CommentResponse,
    DocumentCreate,
    DocumentResponse,
    ProviderCallback,
    RefundRequestCreate,
    RefundRequestDetail,
    RefundRequestResponse,
    RefundTransitionRequest,
    StatusHistoryResponse,
)
from app.services.refund_activity_service import RefundActivityService
from app.services.refund_document_service import RefundDocumentService
from app.services.refund_service import RefundService
from app.services.refund_state_machine import allowed_events

router = APIRouter()


@router.post("/", response_model=RefundRequestResponse, status_code=status.HTTP_201_CREATED)
def create_refund_request(
    *,
    refund_in: RefundRequestCreate,
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """
    Submit a refund request.

    Args:
        refund_in: Booking, amount and reason
        service: Refund service
        actor: Authenticated user

    Returns:
        The new request in ``requested`` status
    """
    return service.create_refund_request(refund_in.model_dump(exclude_none=True), actor)


@router.get("/", response_model=List[RefundRequestResponse])
def list_refund_requests(
    *,
    status_filter: Optional[RefundStatus] = Query(None, alias="status"),
    booking_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """List requests, newest first. Guests only see their own."""
    return service.list_refund_requests(
        actor, status=status_filter, booking_id=booking_id, skip=skip, limit=limit
    )


@router.post("/provider-callback", response_model=RefundRequestResponse)
def provider_callback(
    *,
    callback_in: ProviderCallback,
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """
    Apply the payment provider's outcome to a processing request.

    Identified by refund_id, or by gateway_refund_id when the provider does
    not echo the request ID.
    """
    return service.handle_provider_result(
        succeeded=callback_in.succeeded,
        refund_id=callback_in.refund_id,
        gateway_refund_id=callback_in.gateway_refund_id,
        refunded_amount=callback_in.refunded_amount,
        credit_memo_id=callback_in.credit_memo_id,
        reason=callback_in.reason,
    )


@router.get("/bookings/{booking_id}/summary", response_model=BookingRefundSummary)
def get_booking_refund_summary(
    *,
    booking_id: int = Path(..., ge=1, description="The ID of the booking"),
    amount_paid: Optional[Decimal] = Query(None, ge=0, description="What the guest paid"),
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """
    Refund totals and status for a booking.

    Args:
        booking_id: Booking to summarize
        amount_paid: Amount paid; needed for ``full`` and ``available_for_refund``
        service: Refund service
        actor: Authenticated user

    Returns:
        The booking's refund summary
    """
    return service.get_booking_refund_summary(booking_id, actor, amount_paid=amount_paid)


@router.get("/{refund_id}", response_model=RefundRequestDetail)
def get_refund_request(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """
    Get a refund request.

    Staff opening a newly submitted request start its review.
    """
    request = service.view_refund_request(refund_id, actor)
    detail = RefundRequestDetail.model_validate(request)
    detail.allowed_events = allowed_events(request.status)
    return detail


@router.post("/{refund_id}/transitions", response_model=RefundRequestResponse)
def transition_refund_request(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    transition_in: RefundTransitionRequest,
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """
    Apply an event to a refund request.

    Illegal events, and events that lose a race against a concurrent
    transition, fail with 409 naming the current status.

    Args:
        refund_id: ID of the refund request
        transition_in: Event and the fields it requires
        service: Refund service
        actor: Authenticated staff member

    Returns:
        The request in its new status
    """
    if transition_in.event is RefundEvent.START_PROCESSING:
        return service.start_processing(refund_id, actor)
    return service.transition(
        refund_id,
        transition_in.event,
        actor,
        transition_in.payload(),
        change_reason=transition_in.change_reason,
    )


@router.get("/{refund_id}/history", response_model=List[StatusHistoryResponse])
def get_status_history(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    service: RefundActivityService = Depends(get_refund_activity_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    return service.status_history(refund_id, actor)


@router.get("/{refund_id}/activity", response_model=List[ActivityResponse])
def get_activity(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    service: RefundActivityService = Depends(get_refund_activity_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """Status changes and comments, most recent first."""
    return service.activity(refund_id, actor)


@router.get("/{refund_id}/comments", response_model=List[CommentResponse])
def list_comments(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    service: RefundActivityService = Depends(get_refund_activity_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    return service.list_comments(refund_id, actor)


@router.post(
    "/{refund_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    comment_in: CommentCreate,
    service: RefundActivityService = Depends(get_refund_activity_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    return service.add_comment(
        refund_id, actor, comment_in.comment_text, is_internal=comment_in.is_internal
    )


@router.get("/{refund_id}/documents", response_model=List[DocumentResponse])
def list_documents(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    include_deleted: bool = Query(False, description="Staff only"),
    service: RefundDocumentService = Depends(get_refund_document_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    return service.list_documents(refund_id, actor, include_deleted=include_deleted)


@router.post(
    "/{refund_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_document(
    *,
    refund_id: int = Path(..., ge=1, description="The ID of the refund request"),
    document_in: DocumentCreate,
    service: RefundDocumentService = Depends(get_refund_document_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """Attach metadata for a document the client has already stored."""
    return service.upload_document(refund_id, document_in.model_dump(), actor)


@router.post("/documents/{document_id}/verify", response_model=DocumentResponse)
def verify_document(
    *,
    document_id: int = Path(..., ge=1, description="The ID of the document"),
    service: RefundDocumentService = Depends(get_refund_document_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """Mark a document as verified. Verified documents can no longer be deleted."""
    return service.verify_document(document_id, actor)


@router.delete("/documents/{document_id}", response_model=DocumentResponse)
def delete_document(
    *,
    document_id: int = Path(..., ge=1, description="The ID of the document"),
    service: RefundDocumentService = Depends(get_refund_document_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """Soft-delete an unverified document. Only its uploader may do this."""
    return service.delete_document(document_id, actor)
