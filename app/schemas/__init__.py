# File: app/schemas/__init__.py
"""
Schemas package for the LodgePay API.

This module exports Pydantic models used for request validation and
response serialization.
"""

from app.schemas.payment_rule import (
    EditPermissionResponse,
    PaymentRuleCreate,
    PaymentRulePayload,
    PaymentRuleResponse,
    PaymentRuleUpdate,
    ResolvedRuleResponse,
    RoomAssignmentRequest,
    RoomAssignmentResponse,
)
from app.schemas.payment_schedule import (
    BookingDetails,
    BookingFacts,
    MilestoneResponse,
    PaymentRecord,
    ScheduleLineResponse,
    ScheduleSummaryResponse,
)
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

__all__ = [
    # Payment rules
    "PaymentRulePayload", "PaymentRuleCreate", "PaymentRuleUpdate", "PaymentRuleResponse",
    "EditPermissionResponse", "RoomAssignmentRequest", "RoomAssignmentResponse",
    "ResolvedRuleResponse",

    # Payment schedules
    "BookingFacts", "BookingDetails", "ScheduleLineResponse", "MilestoneResponse",
    "ScheduleSummaryResponse",
    "PaymentRecord",

    # Refunds
    "RefundRequestCreate", "RefundTransitionRequest", "ProviderCallback",
    "RefundRequestResponse", "RefundRequestDetail", "StatusHistoryResponse",
    "CommentCreate", "CommentResponse", "ActivityResponse", "DocumentCreate", "DocumentResponse",
    "BookingRefundSummary",
]
