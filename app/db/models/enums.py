# File: app/db/models/enums.py
"""
Enumerations shared by the LodgePay models, services and schemas.
"""

from enum import Enum


class PaymentRuleType(str, Enum):
    DEPOSIT = "deposit"
    PAYMENT_SCHEDULE = "payment_schedule"
    FLEXIBLE = "flexible"


class AmountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class DueTiming(str, Enum):
    AT_BOOKING = "at_booking"
    ON_CHECKIN = "on_checkin"
    DAYS_BEFORE_CHECKIN = "days_before_checkin"
    DAYS_AFTER_BOOKING = "days_after_booking"
    SPECIFIC_DATE = "specific_date"

    @property
    def requires_days(self) -> bool:
        return self in (DueTiming.DAYS_BEFORE_CHECKIN, DueTiming.DAYS_AFTER_BOOKING)

    @property
    def requires_date(self) -> bool:
        return self is DueTiming.SPECIFIC_DATE


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    OVERDUE = "overdue"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


class RefundStatus(str, Enum):
    REQUESTED = "requested"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundEvent(str, Enum):
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    START_PROCESSING = "start_processing"
    COMPLETE = "complete"
    FAIL = "fail"


class RefundDocumentType(str, Enum):
    RECEIPT = "receipt"
    PROOF_OF_CANCELLATION = "proof_of_cancellation"
    BANK_STATEMENT = "bank_statement"
    OTHER = "other"
