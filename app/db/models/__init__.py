"""
Initializes the models package for SQLAlchemy declarative base.

Importing every model here populates ``Base.metadata`` so that
``Base.metadata.create_all()`` sees all table definitions.
"""

from app.db.models.base import Base, AbstractBase, TimestampMixin, utc_now

from app.db.models.enums import (
    PaymentRuleType,
    AmountType,
    DueTiming,
    MilestoneStatus,
    RefundStatus,
    RefundEvent,
    RefundDocumentType,
)

from app.db.models.property import Property, Room
from app.db.models.payment_rule import PaymentRule, RoomPaymentRuleAssignment
from app.db.models.payment_schedule import BookingPaymentMilestone
from app.db.models.refund import (
    RefundRequest,
    RefundStatusHistory,
    RefundComment,
    RefundDocument,
)

__all__ = [
    "Base",
    "AbstractBase",
    "TimestampMixin",
    "utc_now",
    "PaymentRuleType",
    "AmountType",
    "DueTiming",
    "MilestoneStatus",
    "RefundStatus",
    "RefundEvent",
    "RefundDocumentType",
    "Property",
    "Room",
    "PaymentRule",
    "RoomPaymentRuleAssignment",
    "BookingPaymentMilestone",
    "RefundRequest",
    "RefundStatusHistory",
    "RefundComment",
    "RefundDocument",
]
