# File: app/core/validation.py
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Any, Optional, Type, TypeVar

from app.core.exceptions import ValidationException

E = TypeVar("E", bound=Enum)


class ValidationResult:
    """
    Container for validation results.

    Each error may name the invariant it violates; the first named
    invariant becomes the ``rule_name`` of the raised exception.
    """

    def __init__(self):
        """Initialize an empty validation result."""
        self.errors: Dict[str, List[str]] = {}
        self.rules: List[str] = []

    def add_error(self, field: str, message: str, rule: Optional[str] = None) -> None:
        """
        Add an error for a specific field.

        Args:
            field: Field name with the error
            message: Error message
            rule: Name of the violated invariant
        """
        self.errors.setdefault(field, []).append(message)
        if rule and rule not in self.rules:
            self.rules.append(rule)

    def merge(self, other: "ValidationResult") -> None:
        for field, messages in other.errors.items():
            self.errors.setdefault(field, []).extend(messages)
        for rule in other.rules:
            if rule not in self.rules:
                self.rules.append(rule)

    @property
    def is_valid(self) -> bool:
        """
        Check if validation passed (no errors).

        Returns:
            True if validation passed, False otherwise
        """
        return len(self.errors) == 0

    def __bool__(self) -> bool:
        return self.is_valid

    def to_dict(self) -> Dict[str, List[str]]:
        """
        Convert validation result to dictionary.

        Returns:
            Dictionary of field names to error messages
        """
        return self.errors

    def raise_if_invalid(self, message: str = "Input validation failed") -> None:
        """
        Raise a ValidationException carrying every collected error.

        Raises:
            ValidationException: If any error was added
        """
        if self.is_valid:
            return
        rule_name = self.rules[0] if self.rules else None
        if rule_name:
            message = f"{message}: {rule_name}"
        raise ValidationException(message, self.to_dict(), rule_name=rule_name)


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """Convert numbers and numeric strings to Decimal, None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def coerce_date(value: Any) -> Optional[date]:
    """Accept a date or an ISO ``YYYY-MM-DD`` string."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            return None
    return None


def coerce_enum(enum_cls: Type[E], value: Any) -> Optional[E]:
    """Return the enum member for a member or its value, None if unknown."""
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None
