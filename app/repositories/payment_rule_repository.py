# File: app/repositories/payment_rule_repository.py
"""
Repository for payment rules and their room assignments.

This module provides the queries the rule store and the assignment
resolver need: ordered listings, room-level and property-level candidate
sets, and the join rows that make a rule edit-locked.
"""

from typing import List, Optional

from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from app.db.models.payment_rule import PaymentRule, RoomPaymentRuleAssignment
from app.db.models.property import Room
from app.repositories.base_repository import BaseRepository


class PaymentRuleRepository(BaseRepository[PaymentRule]):
    """
    Repository for PaymentRule entity operations.

    Listings are ordered the way the resolver ranks rules: highest
    priority first, then most recently created, then highest ID.
    """

    model = PaymentRule

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def _ranked(stmt):
        return stmt.order_by(
            desc(PaymentRule.priority), desc(PaymentRule.created_at), desc(PaymentRule.id)
        )

    def list_for_property(
        self, property_id: int, include_inactive: bool = False
    ) -> List[PaymentRule]:
        """
        Get every rule owned by a property.

        Args:
            property_id: Owning property
            include_inactive: Whether deactivated rules are included

        Returns:
            Rules in ranking order
        """
        stmt = select(PaymentRule).where(PaymentRule.property_id == property_id)
        if not include_inactive:
            stmt = stmt.where(PaymentRule.is_active.is_(True))
        return list(self.session.execute(self._ranked(stmt)).scalars().all())

    def get_room_rules(self, room_id: int) -> List[PaymentRule]:
        """
        Get the rules assigned directly to a room, active or not.

        Args:
            room_id: Room to look up

        Returns:
            Rules in ranking order
        """
        stmt = (
            select(PaymentRule)
            .join(
                RoomPaymentRuleAssignment,
                RoomPaymentRuleAssignment.payment_rule_id == PaymentRule.id,
            )
            .where(RoomPaymentRuleAssignment.room_id == room_id)
        )
        return list(self.session.execute(self._ranked(stmt)).scalars().all())

    def get_property_level_rules(self, property_id: int) -> List[PaymentRule]:
        """
        Get the property's rules that are not assigned to any room.

        Args:
            property_id: Owning property

        Returns:
            Rules in ranking order
        """
        assigned = select(RoomPaymentRuleAssignment.payment_rule_id)
        stmt = select(PaymentRule).where(
            PaymentRule.property_id == property_id,
            PaymentRule.id.not_in(assigned),
        )
        return list(self.session.execute(self._ranked(stmt)).scalars().all())

    # Assignments

    def get_assignment(
        self, rule_id: int, room_id: int
    ) -> Optional[RoomPaymentRuleAssignment]:
        stmt = select(RoomPaymentRuleAssignment).where(
            RoomPaymentRuleAssignment.payment_rule_id == rule_id,
            RoomPaymentRuleAssignment.room_id == room_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_assigned_room_names(self, rule_id: int) -> List[str]:
        """
        Names of the rooms a rule is assigned to, ordered by room ID.

        Args:
            rule_id: Payment rule ID

        Returns:
            Room names
        """
        stmt = (
            select(Room.name)
            .join(RoomPaymentRuleAssignment, RoomPaymentRuleAssignment.room_id == Room.id)
            .where(RoomPaymentRuleAssignment.payment_rule_id == rule_id)
            .order_by(Room.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def add_assignment(
        self, rule_id: int, room_id: int, assigned_by: Optional[int] = None
    ) -> RoomPaymentRuleAssignment:
        assignment = RoomPaymentRuleAssignment(
            payment_rule_id=rule_id, room_id=room_id, assigned_by=assigned_by
        )
        self.session.add(assignment)
        self.session.flush()
        return assignment

    def remove_assignment(self, assignment: RoomPaymentRuleAssignment) -> None:
        self.session.delete(assignment)
        self.session.flush()
