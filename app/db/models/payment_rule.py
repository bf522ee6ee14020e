# File: app/db/models/payment_rule.py
"""
Payment rule models for LodgePay.

A payment rule describes how a guest pays for a booking. Its payload is a
tagged variant selected by ``rule_type``: the deposit columns are populated
only for deposit rules and ``schedule_config`` only for payment schedules.
``app.services.payment_terms`` converts between these columns and typed
terms objects.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    ForeignKey,
    Date,
    DateTime,
    Text,
    Boolean,
    Numeric,
    JSON,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db.models.base import AbstractBase, TimestampMixin, utc_now
from app.db.models.enums import PaymentRuleType, AmountType, DueTiming


class PaymentRule(AbstractBase, TimestampMixin):
    """
    Payment rule owned by a property.

    Attributes:
        property_id: Owning property
        rule_name: Display name, editable while assigned
        description: Free text, editable while assigned
        rule_type: Variant tag (deposit, payment_schedule, flexible)
        deposit_*/balance_*: Deposit payload columns
        schedule_config: Milestone list for payment schedules
        allowed_payment_methods: Optional list of accepted methods
        applies_to_dates: Whether start_date/end_date limit the rule
        priority: Higher value wins when several rules apply
        created_by: User ID of the creating manager
        version: Revision counter checked on every UPDATE
    """

    __tablename__ = "payment_rules"

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    rule_name = Column(String(100), nullable=False)
    description = Column(Text)
    rule_type = Column(Enum(PaymentRuleType), nullable=False)

    # Deposit payload
    deposit_type = Column(Enum(AmountType))
    deposit_amount = Column(Numeric(12, 2))
    deposit_due = Column(Enum(DueTiming))
    deposit_due_days = Column(Integer)
    deposit_due_date = Column(Date)
    balance_due = Column(Enum(DueTiming))
    balance_due_days = Column(Integer)
    balance_due_date = Column(Date)

    # Payment schedule payload
    schedule_config = Column(JSON)

    allowed_payment_methods = Column(JSON)

    # Applicability
    applies_to_dates = Column(Boolean, default=False, nullable=False)
    start_date = Column(Date)
    end_date = Column(Date)
    priority = Column(Integer, default=0, nullable=False)

    created_by = Column(Integer)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    owning_property = relationship("Property", back_populates="payment_rules")
    assignments = relationship(
        "RoomPaymentRuleAssignment",
        back_populates="payment_rule",
        cascade="all, delete-orphan",
    )

    @property
    def terms(self):
        """Typed payload for this rule's variant."""
        from app.services.payment_terms import terms_from_rule

        return terms_from_rule(self)

    def __repr__(self) -> str:
        return (
            f"<PaymentRule(id={self.id}, property_id={self.property_id}, "
            f"type='{self.rule_type}', priority={self.priority})>"
        )


class RoomPaymentRuleAssignment(AbstractBase):
    """Join row assigning a payment rule to a room."""

    __tablename__ = "room_payment_rule_assignments"
    __table_args__ = (
        UniqueConstraint("room_id", "payment_rule_id", name="uq_room_payment_rule"),
    )

    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    payment_rule_id = Column(
        Integer, ForeignKey("payment_rules.id"), nullable=False, index=True
    )
    assigned_by = Column(Integer)
    assigned_at = Column(DateTime, default=utc_now, nullable=False)

    room = relationship("Room", back_populates="payment_rule_assignments")
    payment_rule = relationship("PaymentRule", back_populates="assignments")

    def __repr__(self) -> str:
        return (
            f"<RoomPaymentRuleAssignment(room_id={self.room_id}, "
            f"payment_rule_id={self.payment_rule_id})>"
        )
