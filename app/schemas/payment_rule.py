# File: app/schemas/payment_rule.py
"""
Payment rule schemas for the LodgePay API.

Request models are permissive about the payment payload: the
rule service checks the payload invariants and reports each violation by
name, so the schemas only pin down field types.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.db.models.enums import AmountType, DueTiming, PaymentRuleType


class PaymentRulePayload(BaseModel):
    """Fields shared by rule creation and updates."""

    rule_name: Optional[str] = Field(None, description="Display name of the rule", max_length=100)
    description: Optional[str] = Field(None, description="Free-text description")
    rule_type: Optional[PaymentRuleType] = Field(None, description="deposit, payment_schedule or flexible")

    deposit_type: Optional[AmountType] = Field(None, description="How deposit_amount is interpreted")
    deposit_amount: Optional[Decimal] = Field(None, description="Deposit percentage or fixed amount")
    deposit_due: Optional[DueTiming] = Field(None, description="When the deposit is due")
    deposit_due_days: Optional[int] = Field(None, description="Offset in days for days_* timings")
    deposit_due_date: Optional[date] = Field(None, description="Date for a specific_date timing")
    balance_due: Optional[DueTiming] = Field(None, description="When the balance is due")
    balance_due_days: Optional[int] = Field(None, description="Offset in days for days_* timings")
    balance_due_date: Optional[date] = Field(None, description="Date for a specific_date timing")

    schedule_config: Optional[List[Dict[str, Any]]] = Field(
        None,
        description="Milestones: sequence, name, amount_type, amount, due, days, specific_date",
    )

    allowed_payment_methods: Optional[List[str]] = Field(None, description="Accepted payment methods")
    applies_to_dates: Optional[bool] = Field(None, description="Whether the date window applies")
    start_date: Optional[date] = Field(None, description="First day the rule applies")
    end_date: Optional[date] = Field(None, description="Last day the rule applies")
    priority: Optional[int] = Field(None, description="Higher values win during resolution")


class PaymentRuleCreate(PaymentRulePayload):
    """
    Schema for creating a payment rule.
    """

    property_id: int = Field(..., description="Property that owns the rule")
    rule_name: str = Field(..., description="Display name of the rule", max_length=100)
    rule_type: PaymentRuleType = Field(..., description="deposit, payment_schedule or flexible")


class PaymentRuleUpdate(PaymentRulePayload):
    """
    Schema for a partial rule update.

    Only fields present in the request body are applied.
    """

    expected_version: Optional[int] = Field(
        None, description="Version the client last read; the update fails if it changed"
    )


class PaymentRuleResponse(BaseModel):
    """
    Schema for payment rule responses.
    """

    id: int
    property_id: int
    rule_name: str
    description: Optional[str] = None
    rule_type: PaymentRuleType
    deposit_type: Optional[AmountType] = None
    deposit_amount: Optional[Decimal] = None
    deposit_due: Optional[DueTiming] = None
    deposit_due_days: Optional[int] = None
    deposit_due_date: Optional[date] = None
    balance_due: Optional[DueTiming] = None
    balance_due_days: Optional[int] = None
    balance_due_date: Optional[date] = None
    schedule_config: Optional[List[Dict[str, Any]]] = None
    allowed_payment_methods: Optional[List[str]] = None
    applies_to_dates: bool
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    priority: int
    is_active: bool
    version: int
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EditPermissionResponse(BaseModel):
    rule_id: int
    can_edit: bool = Field(..., description="Whether structural fields may change")
    assigned_room_count: int
    room_names: List[str] = Field(default_factory=list, description="Rooms blocking structural edits")


class RoomAssignmentRequest(BaseModel):
    room_ids: List[int] = Field(..., description="Rooms to assign the rule to", min_length=1)


class RoomAssignmentResponse(BaseModel):
    rule_id: int
    room_names: List[str] = Field(..., description="Rooms the rule is assigned to")


class ResolvedRuleResponse(BaseModel):
    """The rule selected for a room on a date."""

    property_id: int
    room_id: Optional[int] = None
    as_of: date
    rule: PaymentRuleResponse
