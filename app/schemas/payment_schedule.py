# File: app/schemas/payment_schedule.py
"""
Payment schedule schemas for the LodgePay API.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, validator

from app.core.config import settings
from app.db.models.enums import DueTiming, MilestoneStatus


class BookingFacts(BaseModel):
    """
    Booking facts a schedule is computed from.
    """

    total_price: Decimal = Field(..., description="Total booking price", gt=0)
    booking_date: date = Field(..., description="Date the booking was made")
    checkin_date: date = Field(..., description="Check-in date")
    currency: str = Field(settings.DEFAULT_CURRENCY, description="ISO currency code", max_length=3)

    @validator("checkin_date")
    def checkin_not_before_booking(cls, v, values):
        booking_date = values.get("booking_date")
        if booking_date and v < booking_date:
            raise ValueError("Check-in date cannot be before the booking date")
        return v


class BookingDetails(BookingFacts):
    """Booking facts plus the room whose rule applies."""

    property_id: int = Field(..., description="Property of the booked room")
    room_id: Optional[int] = Field(None, description="Booked room; omit for property-level rules")


class ScheduleLineResponse(BaseModel):
    sequence: int
    label: str
    amount: Decimal
    due_date: date
    due_timing: DueTiming

    class Config:
        from_attributes = True


class MilestoneResponse(BaseModel):
    """
    Schema for a persisted booking payment milestone.
    """

    id: int
    booking_id: int
    milestone_sequence: int
    milestone_name: str
    amount_due: Decimal
    amount_paid: Decimal
    currency: str
    due_date: date
    due_type: DueTiming
    status: MilestoneStatus
    paid_at: Optional[datetime] = None
    created_from_rule_id: Optional[int] = None

    class Config:
        from_attributes = True


class ScheduleSummaryResponse(BaseModel):
    booking_id: int
    milestone_count: int
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    overdue_count: int
    next_due_date: Optional[date] = None
    next_due_amount: Optional[Decimal] = None


class PaymentRecord(BaseModel):
    amount: Decimal = Field(..., description="Amount received", gt=0)
    paid_at: Optional[datetime] = Field(None, description="When the money arrived")
