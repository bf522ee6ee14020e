# File: app/db/models/property.py
"""
Property and room models.

Only the fields the payment engine needs are kept here: a property owns
payment rules, and rules are assigned to its rooms by name.
"""

from sqlalchemy import Column, String, Integer, ForeignKey
from sqlalchemy.orm import relationship

from app.db.models.base import AbstractBase, TimestampMixin


class Property(AbstractBase, TimestampMixin):
    """
    A rentable property.

    Attributes:
        name: Display name
        owner_id: User ID of the owning property manager
    """

    __tablename__ = "properties"

    name = Column(String(255), nullable=False)
    owner_id = Column(Integer, nullable=False, index=True)

    rooms = relationship(
        "Room", back_populates="owning_property", cascade="all, delete-orphan"
    )
    payment_rules = relationship("PaymentRule", back_populates="owning_property")

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name='{self.name}')>"


class Room(AbstractBase, TimestampMixin):
    """A bookable room belonging to a property."""

    __tablename__ = "rooms"

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    owning_property = relationship("Property", back_populates="rooms")
    payment_rule_assignments = relationship(
        "RoomPaymentRuleAssignment", back_populates="room", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, property_id={self.property_id}, name='{self.name}')>"
