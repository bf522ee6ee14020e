# File: app/services/payment_rule_service.py
"""
Payment rule service for LodgePay.

This module provides the rule definition store and the assignment
resolver:

- Creating and updating rules with their variant payload validated before
  anything is written.
- Edit locking: while a rule is assigned to any room only its name and
  description may change.
- Assigning rules to rooms and resolving the single rule that applies to a
  room on a given date.

Every write to a rule row goes through its ``version`` column, so a
structural edit and a room assignment racing on the same rule cannot both
commit.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.events import (
    EventBus,
    PaymentRuleCreated,
    PaymentRuleUpdated,
    PaymentRuleAssignmentChanged,
)
from app.core.exceptions import (
    BusinessRuleException,
    ConcurrentModificationException,
    EditLockedException,
    EntityNotFoundException,
    NoApplicableRuleException,
    PaymentRuleNotFoundException,
    RuleInUseException,
)
from app.core.validation import ValidationResult, coerce_date, coerce_enum
from app.db.models.base import utc_now
from app.db.models.enums import PaymentRuleType
from app.db.models.payment_rule import PaymentRule
from app.repositories.payment_rule_repository import PaymentRuleRepository
from app.repositories.payment_schedule_repository import (
    BookingPaymentMilestoneRepository,
)
from app.repositories.property_repository import PropertyRepository, RoomRepository
from app.services.base_service import BaseService
from app.services.payment_terms import (
    INVALID_VALUE,
    MISSING_FIELD,
    PAYLOAD_FIELDS,
    payload_from_rule,
    terms_to_columns,
    validate_applicability,
    validate_terms,
)

logger = logging.getLogger(__name__)

# Fields that may change while a rule is assigned to rooms
COSMETIC_FIELDS = ("rule_name", "description")

APPLICABILITY_FIELDS = ("applies_to_dates", "start_date", "end_date")

STRUCTURAL_FIELDS = (
    ("rule_type",)
    + PAYLOAD_FIELDS
    + APPLICABILITY_FIELDS
    + ("priority", "allowed_payment_methods")
)

UPDATABLE_FIELDS = COSMETIC_FIELDS + STRUCTURAL_FIELDS


def _jsonable(value: Any) -> Any:
    value = getattr(value, "value", value)
    if value is None or isinstance(value, (bool, int, str, list, dict)):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _is_applicable(rule: PaymentRule, as_of: date) -> bool:
    if not rule.is_active:
        return False
    if not rule.applies_to_dates:
        return True
    if rule.start_date is None or rule.end_date is None:
        return False
    return rule.start_date <= as_of <= rule.end_date


class PaymentRuleService(BaseService[PaymentRule]):
    """
    Service for managing payment rules in the LodgePay system.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[PaymentRuleRepository] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize PaymentRuleService with dependencies.

        Args:
            session: Database session for persistence operations
            repository: Optional payment rule repository
            event_bus: Optional event bus for publishing events
        """
        super().__init__(
            session,
            repository=repository or PaymentRuleRepository(session),
            event_bus=event_bus,
        )
        self.property_repository = PropertyRepository(session)
        self.room_repository = RoomRepository(session)
        self.milestone_repository = BookingPaymentMilestoneRepository(session)

    def _not_found(self, id: int):
        return PaymentRuleNotFoundException(id)

    # Validation helpers

    @staticmethod
    def _validate_rule_name(result: ValidationResult, name: Any) -> Optional[str]:
        if not isinstance(name, str) or not name.strip():
            result.add_error("rule_name", "Rule name is required", MISSING_FIELD)
            return None
        name = name.strip()
        if len(name) > settings.RULE_NAME_MAX_LENGTH:
            result.add_error(
                "rule_name",
                f"Rule name must be {settings.RULE_NAME_MAX_LENGTH} characters or less",
                INVALID_VALUE,
            )
            return None
        return name

    @staticmethod
    def _validate_priority(result: ValidationResult, priority: Any) -> Optional[int]:
        if isinstance(priority, bool) or not isinstance(priority, int):
            result.add_error("priority", "Priority must be a whole number", INVALID_VALUE)
            return None
        return priority

    @staticmethod
    def _validate_payment_methods(result: ValidationResult, methods: Any) -> Optional[List[str]]:
        if methods is None:
            return None
        if not isinstance(methods, (list, tuple)) or not all(
            isinstance(m, str) and m.strip() for m in methods
        ):
            result.add_error(
                "allowed_payment_methods",
                "Payment methods must be a list of names",
                INVALID_VALUE,
            )
            return None
        return [m.strip() for m in methods]

    def _check_applicability(
        self, result: ValidationResult, values: Dict[str, Any]
    ) -> Dict[str, Any]:
        applies = bool(values.get("applies_to_dates"))
        start = values.get("start_date")
        end = values.get("end_date")
        start_date = coerce_date(start)
        end_date = coerce_date(end)
        if start is not None and start_date is None:
            result.add_error("start_date", f"Invalid date '{start}'", INVALID_VALUE)
        if end is not None and end_date is None:
            result.add_error("end_date", f"Invalid date '{end}'", INVALID_VALUE)
        result.merge(validate_applicability(applies, start_date, end_date))
        return {"applies_to_dates": applies, "start_date": start_date, "end_date": end_date}

    # Store operations

    def create_rule(self, data: Dict[str, Any], user_id: Optional[int] = None) -> PaymentRule:
        """
        Create a payment rule.

        Args:
            data: Rule fields: property_id, rule_name, description, rule_type,
                the variant payload, applicability window, priority and
                allowed_payment_methods
            user_id: ID of the creating user

        Returns:
            The created rule

        Raises:
            ValidationException: If any field or payload invariant is violated
            EntityNotFoundException: If the property does not exist
        """
        unknown = set(data) - set(UPDATABLE_FIELDS) - {"property_id"}
        result = ValidationResult()
        for field in sorted(unknown):
            result.add_error(field, "Unknown field", INVALID_VALUE)

        name = self._validate_rule_name(result, data.get("rule_name"))
        terms, terms_result = validate_terms(data.get("rule_type"), data)
        result.merge(terms_result)
        window = self._check_applicability(result, data)
        priority = self._validate_priority(result, data.get("priority", 0))
        methods = self._validate_payment_methods(result, data.get("allowed_payment_methods"))
        result.raise_if_invalid("Invalid payment rule")

        property_id = data.get("property_id")
        if property_id is None or self.property_repository.get_by_id(property_id) is None:
            raise EntityNotFoundException("Property", property_id)

        with self.transaction():
            values = {
                "property_id": property_id,
                "rule_name": name,
                "description": data.get("description"),
                "priority": priority,
                "allowed_payment_methods": methods,
                "created_by": user_id,
                "is_active": True,
                **window,
                **terms_to_columns(terms),
            }
            rule = self.repository.create(values)
            self.publish_after_commit(
                PaymentRuleCreated(
                    rule_id=rule.id,
                    property_id=property_id,
                    rule_type=rule.rule_type.value,
                    user_id=user_id,
                )
            )

        self._log_operation("create", "PaymentRule", rule.id, user_id, {"rule_type": rule.rule_type.value})
        return rule

    def get_rule(self, rule_id: int) -> PaymentRule:
        """
        Get a payment rule by ID.

        Raises:
            PaymentRuleNotFoundException: If the rule does not exist
        """
        return self.get_entity_or_404(rule_id)

    def list_rules(self, property_id: int, include_inactive: bool = False) -> List[PaymentRule]:
        """Rules of a property, highest priority first."""
        return self.repository.list_for_property(property_id, include_inactive)

    def get_edit_permission(self, rule_id: int) -> Dict[str, Any]:
        """
        Whether a rule's structure can be edited right now.

        Returns:
            Dictionary with can_edit, assigned_room_count and room_names
        """
        self.get_rule(rule_id)
        room_names = self.repository.get_assigned_room_names(rule_id)
        return {
            "rule_id": rule_id,
            "can_edit": not room_names,
            "assigned_room_count": len(room_names),
            "room_names": room_names,
        }

    def update_rule(
        self,
        rule_id: int,
        patch: Dict[str, Any],
        user_id: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> PaymentRule:
        """
        Apply a partial update to a rule.

        Only fields whose value actually changes count. A change to anything
        other than the name or description is structural and is refused
        while the rule is assigned to rooms.

        Args:
            rule_id: Rule to update
            patch: Fields to change
            user_id: ID of the editing user
            expected_version: Version the caller last saw, if it wants the check

        Returns:
            The updated rule

        Raises:
            PaymentRuleNotFoundException: If the rule does not exist
            ValidationException: If the patched rule would be invalid
            EditLockedException: If a structural change targets an assigned rule
            ConcurrentModificationException: If the rule changed since ``expected_version``
        """
        with self.transaction():
            rule = self.get_rule(rule_id)
            if expected_version is not None and rule.version != expected_version:
                raise ConcurrentModificationException(
                    f"Payment rule {rule_id} was modified by another user",
                    expected_version=expected_version,
                    actual_version=rule.version,
                )

            changes = self._compute_changes(rule, patch)
            structural = [field for field in changes if field not in COSMETIC_FIELDS]

            if structural:
                room_names = self.repository.get_assigned_room_names(rule_id)
                if room_names:
                    raise EditLockedException(rule_id, room_names, structural)

            if not changes:
                return rule

            self.repository.update(rule, changes)
            self.publish_after_commit(
                PaymentRuleUpdated(
                    rule_id=rule_id,
                    changes={k: _jsonable(v) for k, v in changes.items()},
                    user_id=user_id,
                )
            )

        self._log_operation("update", "PaymentRule", rule_id, user_id, {"fields": sorted(changes)})
        return rule

    def _compute_changes(self, rule: PaymentRule, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Validate a patch against the current rule and return changed columns."""
        result = ValidationResult()
        for field in sorted(set(patch) - set(UPDATABLE_FIELDS)):
            result.add_error(field, "Field cannot be updated", INVALID_VALUE)

        proposed: Dict[str, Any] = {}
        if "rule_name" in patch:
            proposed["rule_name"] = self._validate_rule_name(result, patch["rule_name"])
        if "description" in patch:
            proposed["description"] = patch["description"]

        if "rule_type" in patch or any(field in patch for field in PAYLOAD_FIELDS):
            new_type = patch.get("rule_type", rule.rule_type)
            # A type change starts from an empty payload so old variant fields do not linger
            same_type = coerce_enum(PaymentRuleType, new_type) is rule.rule_type
            payload = payload_from_rule(rule) if same_type else {}
            payload.update({f: patch[f] for f in PAYLOAD_FIELDS if f in patch})
            terms, terms_result = validate_terms(new_type, payload)
            result.merge(terms_result)
            if terms is not None:
                proposed.update(terms_to_columns(terms))

        if any(field in patch for field in APPLICABILITY_FIELDS):
            current = {field: getattr(rule, field) for field in APPLICABILITY_FIELDS}
            current.update({f: patch[f] for f in APPLICABILITY_FIELDS if f in patch})
            proposed.update(self._check_applicability(result, current))

        if "priority" in patch:
            proposed["priority"] = self._validate_priority(result, patch["priority"])
        if "allowed_payment_methods" in patch:
            proposed["allowed_payment_methods"] = self._validate_payment_methods(
                result, patch["allowed_payment_methods"]
            )

        result.raise_if_invalid("Invalid payment rule update")
        return {
            field: value
            for field, value in proposed.items()
            if getattr(rule, field) != value
        }

    def set_active(self, rule_id: int, active: bool, user_id: Optional[int] = None) -> PaymentRule:
        """
        Activate or deactivate a rule.

        Deactivation is the way to retire a rule that bookings still
        reference; it is allowed while the rule is assigned.
        """
        with self.transaction():
            rule = self.get_rule(rule_id)
            if rule.is_active != active:
                self.repository.update(rule, {"is_active": active})
                self.publish_after_commit(
                    PaymentRuleUpdated(rule_id=rule_id, changes={"is_active": active}, user_id=user_id)
                )

        self._log_operation("activate" if active else "deactivate", "PaymentRule", rule_id, user_id)
        return rule

    def deactivate_rule(self, rule_id: int, user_id: Optional[int] = None) -> PaymentRule:
        return self.set_active(rule_id, False, user_id)

    def activate_rule(self, rule_id: int, user_id: Optional[int] = None) -> PaymentRule:
        return self.set_active(rule_id, True, user_id)

    def delete_rule(self, rule_id: int, user_id: Optional[int] = None) -> None:
        """
        Hard-delete a rule and its room assignments.

        Raises:
            RuleInUseException: If any booking schedule was generated from the rule
        """
        with self.transaction():
            rule = self.get_rule(rule_id)
            booking_count = self.milestone_repository.count_for_rule(rule_id)
            if booking_count:
                raise RuleInUseException(rule_id, booking_count)
            self.repository.delete(rule)

        self._log_operation("delete", "PaymentRule", rule_id, user_id)

    # Assignments

    def assign_rooms(
        self, rule_id: int, room_ids: Iterable[int], user_id: Optional[int] = None
    ) -> List[str]:
        """
        Assign a rule to rooms of its property.

        Rooms that already carry the rule are skipped. The rule's version is
        bumped in the same transaction so a concurrent structural edit fails.

        Returns:
            Names of every room the rule is now assigned to

        Raises:
            EntityNotFoundException: If a room does not exist
            BusinessRuleException: If a room belongs to another property
        """
        room_ids = list(dict.fromkeys(room_ids))
        with self.transaction():
            rule = self.get_rule(rule_id)
            rooms = {room.id: room for room in self.room_repository.get_by_ids(room_ids)}
            added = []
            for room_id in room_ids:
                room = rooms.get(room_id)
                if room is None:
                    raise EntityNotFoundException("Room", room_id)
                if room.property_id != rule.property_id:
                    raise BusinessRuleException(
                        f"Room {room_id} does not belong to property {rule.property_id}",
                        rule_name="ROOM_PROPERTY_MISMATCH",
                        details={"room_id": room_id, "property_id": rule.property_id},
                    )
                if self.repository.get_assignment(rule_id, room_id) is None:
                    self.repository.add_assignment(rule_id, room_id, user_id)
                    added.append(room_id)

            if added:
                self.repository.update(rule, {"updated_at": utc_now()})
                self.publish_after_commit(
                    PaymentRuleAssignmentChanged(
                        rule_id=rule_id, room_ids=added, assigned=True, user_id=user_id
                    )
                )
            room_names = self.repository.get_assigned_room_names(rule_id)

        logger.info(f"Payment rule {rule_id} assigned to rooms {added}")
        return room_names

    def unassign_room(self, rule_id: int, room_id: int, user_id: Optional[int] = None) -> List[str]:
        """
        Remove a rule from a room.

        Returns:
            Names of the rooms the rule is still assigned to

        Raises:
            EntityNotFoundException: If the rule is not assigned to the room
        """
        with self.transaction():
            rule = self.get_rule(rule_id)
            assignment = self.repository.get_assignment(rule_id, room_id)
            if assignment is None:
                raise EntityNotFoundException("RoomPaymentRuleAssignment", f"{rule_id}/{room_id}")
            self.repository.remove_assignment(assignment)
            self.repository.update(rule, {"updated_at": utc_now()})
            self.publish_after_commit(
                PaymentRuleAssignmentChanged(
                    rule_id=rule_id, room_ids=[room_id], assigned=False, user_id=user_id
                )
            )
            room_names = self.repository.get_assigned_room_names(rule_id)

        logger.info(f"Payment rule {rule_id} unassigned from room {room_id}")
        return room_names

    # Resolution

    def resolve_rule(
        self, property_id: int, room_id: Optional[int], as_of: date
    ) -> PaymentRule:
        """
        Select the single payment rule that applies to a room on a date.

        Rules assigned to the room are considered first. When none of them
        applies, the property's unassigned rules are considered instead.
        Inactive rules and rules whose date window excludes ``as_of`` are
        skipped. The winner has the highest priority, then the latest
        creation time, then the highest ID.

        Args:
            property_id: Property of the room
            room_id: Room being booked, or None for property-level only
            as_of: Date the rule must apply on

        Returns:
            The applicable rule

        Raises:
            NoApplicableRuleException: If no rule applies
        """
        if isinstance(as_of, datetime):
            as_of = as_of.date()

        candidates: List[PaymentRule] = []
        if room_id is not None:
            candidates = [
                rule for rule in self.repository.get_room_rules(room_id)
                if rule.property_id == property_id and _is_applicable(rule, as_of)
            ]
        if not candidates:
            candidates = [
                rule for rule in self.repository.get_property_level_rules(property_id)
                if _is_applicable(rule, as_of)
            ]
        if not candidates:
            raise NoApplicableRuleException(property_id, room_id, as_of)

        winner = max(candidates, key=lambda r: (r.priority, r.created_at, r.id))
        logger.debug(
            f"Resolved payment rule {winner.id} for property {property_id}, room {room_id} on {as_of}"
        )
        return winner
