# File: app/api/endpoints/payment_schedules.py
"""
Payment schedule API endpoints for LodgePay.

Previews expand the applicable rule without storing anything; generated
schedules are persisted per booking and track payments against each line.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Path, status

from app.api.deps import get_current_actor, get_payment_schedule_service, require_staff
from app.core.security import Actor
from app.schemas.payment_schedule import (
    BookingDetails,
    MilestoneResponse,
    PaymentRecord,
    ScheduleLineResponse,
    ScheduleSummaryResponse,
)
from app.services.payment_schedule_service import BookingContext, PaymentScheduleService

router = APIRouter()


def _booking_context(booking_in: BookingDetails) -> BookingContext:
    return BookingContext(
        total_price=booking_in.total_price,
        booking_date=booking_in.booking_date,
        checkin_date=booking_in.checkin_date,
        currency=booking_in.currency,
    )


@router.post("/preview", response_model=List[ScheduleLineResponse])
def preview_schedule(
    *,
    booking_in: BookingDetails,
    service: PaymentScheduleService = Depends(get_payment_schedule_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """
    Show the payments a booking would owe.

    Args:
        booking_in: Booking facts
        service: Payment schedule service
        actor: Authenticated user

    Returns:
        Ordered payment lines; empty for a flexible rule
    """
    return service.preview_schedule(
        booking_in.property_id, booking_in.room_id, _booking_context(booking_in)
    )


@router.post(
    "/bookings/{booking_id}",
    response_model=List[MilestoneResponse],
    status_code=status.HTTP_201_CREATED,
)
def generate_schedule(
    *,
    booking_id: int = Path(..., ge=1, description="The ID of the booking"),
    booking_in: BookingDetails,
    service: PaymentScheduleService = Depends(get_payment_schedule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """Persist the payment schedule of a booking."""
    return service.generate_schedule(
        booking_id, booking_in.property_id, booking_in.room_id, _booking_context(booking_in)
    )


@router.get("/bookings/{booking_id}", response_model=List[MilestoneResponse])
def get_schedule(
    *,
    booking_id: int = Path(..., ge=1, description="The ID of the booking"),
    service: PaymentScheduleService = Depends(get_payment_schedule_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    return service.get_schedule(booking_id)


@router.get("/bookings/{booking_id}/summary", response_model=ScheduleSummaryResponse)
def get_schedule_summary(
    *,
    booking_id: int = Path(..., ge=1, description="The ID of the booking"),
    service: PaymentScheduleService = Depends(get_payment_schedule_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    return service.get_schedule_summary(booking_id)


@router.post("/bookings/{booking_id}/cancel")
def cancel_schedule(
    *,
    booking_id: int = Path(..., ge=1, description="The ID of the booking"),
    service: PaymentScheduleService = Depends(get_payment_schedule_service),
    actor: Actor = Depends(require_staff),
) -> Dict[str, int]:
    """Cancel the open lines of a booking's schedule."""
    return {"booking_id": booking_id, "cancelled": service.cancel_booking_schedule(booking_id)}


@router.post("/milestones/{milestone_id}/payments", response_model=MilestoneResponse)
def record_payment(
    *,
    milestone_id: int = Path(..., ge=1, description="The ID of the milestone"),
    payment_in: PaymentRecord,
    service: PaymentScheduleService = Depends(get_payment_schedule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    return service.record_payment(milestone_id, payment_in.amount, payment_in.paid_at)


@router.post("/mark-overdue")
def mark_overdue(
    *,
    today: Optional[date] = Body(None, embed=True, description="Reference date"),
    service: PaymentScheduleService = Depends(get_payment_schedule_service),
    actor: Actor = Depends(require_staff),
) -> Dict[str, int]:
    """Flag pending lines whose due date has passed."""
    return {"marked_overdue": service.mark_overdue_milestones(today)}
