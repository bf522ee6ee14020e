# File: app/core/exceptions.py

from typing import Dict, Any, List, Optional
from datetime import datetime


class LodgePayException(Exception):
    """Base exception for all LodgePay errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize a LodgePay exception.

        Args:
            message: Human-readable error message
            code: Optional machine-processable error code
            details: Additional error details
        """
        self.message = message
        self.code = code or "GENERIC_ERROR"
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": datetime.now().isoformat(),
        }


# Domain-specific exceptions
class DomainException(LodgePayException):
    """Base exception for domain-related errors."""

    CODE_PREFIX = "DOMAIN_"


class EntityNotFoundException(DomainException):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            f"{self.CODE_PREFIX}001",
            {"entity_type": entity_type, "entity_id": entity_id},
        )


# Validation exceptions
class ValidationException(LodgePayException):
    """
    Raised when input validation fails.

    ``rule_name`` names the violated invariant (for example ``PERCENTAGE_SUM``)
    so callers can tell the user exactly what to fix.
    """

    def __init__(
        self,
        message: str,
        validation_errors: Optional[Dict[str, List[str]]] = None,
        rule_name: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"validation_errors": validation_errors or {}}
        if rule_name:
            details["rule_name"] = rule_name
        super().__init__(message, "VALIDATION_001", details)

    @property
    def rule_name(self) -> Optional[str]:
        return self.details.get("rule_name")


# Payment rule exceptions
class PaymentRuleException(LodgePayException):
    """Base exception for payment-rule errors."""

    CODE_PREFIX = "PAYMENT_RULE_"


class PaymentRuleNotFoundException(PaymentRuleException):
    """Raised when a requested payment rule does not exist."""

    def __init__(self, rule_id: int):
        super().__init__(
            f"Payment rule with ID {rule_id} not found",
            f"{self.CODE_PREFIX}001",
            {"rule_id": rule_id},
        )


class EditLockedException(PaymentRuleException):
    """Raised when a structural edit targets a rule that is assigned to rooms."""

    def __init__(self, rule_id: int, room_names: List[str], fields: List[str]):
        rooms = ", ".join(room_names)
        super().__init__(
            f"Payment rule {rule_id} is assigned to {len(room_names)} room(s) "
            f"({rooms}); unassign it before changing {', '.join(fields)}",
            f"{self.CODE_PREFIX}002",
            {"rule_id": rule_id, "room_names": room_names, "fields": fields},
        )

    @property
    def room_names(self) -> List[str]:
        return self.details["room_names"]


class NoApplicableRuleException(PaymentRuleException):
    """Raised when no payment rule applies to a room on a given date."""

    def __init__(self, property_id: int, room_id: Optional[int], as_of: Any):
        super().__init__(
            f"No applicable payment rule for property {property_id}, "
            f"room {room_id} on {as_of}",
            f"{self.CODE_PREFIX}003",
            {
                "property_id": property_id,
                "room_id": room_id,
                "as_of": str(as_of),
            },
        )


class RuleInUseException(PaymentRuleException):
    """Raised when deleting a rule that booking schedules still reference."""

    def __init__(self, rule_id: int, booking_count: int):
        super().__init__(
            f"Payment rule {rule_id} is referenced by {booking_count} booking "
            f"schedule(s). Deactivate it instead.",
            f"{self.CODE_PREFIX}004",
            {"rule_id": rule_id, "booking_count": booking_count},
        )


# Refund exceptions
class RefundException(LodgePayException):
    """Base exception for refund-related errors."""

    CODE_PREFIX = "REFUND_"


class RefundNotFoundException(RefundException):
    """Raised when a requested refund request does not exist."""

    def __init__(self, refund_id: int):
        super().__init__(
            f"Refund request with ID {refund_id} not found",
            f"{self.CODE_PREFIX}001",
            {"refund_id": refund_id},
        )


class InvalidStatusTransitionException(RefundException):
    """Raised when an event is not legal from the request's current status."""

    def __init__(
        self,
        current_status: str,
        attempted_event: str,
        refund_id: Optional[int] = None,
        allowed_events: Optional[List[str]] = None,
    ):
        details: Dict[str, Any] = {
            "current_status": current_status,
            "attempted_event": attempted_event,
        }
        if refund_id is not None:
            details["refund_id"] = refund_id
        if allowed_events is not None:
            details["allowed_events"] = allowed_events
        super().__init__(
            f"Cannot apply '{attempted_event}' to a refund request in status "
            f"'{current_status}'",
            f"{self.CODE_PREFIX}002",
            details,
        )

    @property
    def current_status(self) -> str:
        return self.details["current_status"]

    @property
    def attempted_event(self) -> str:
        return self.details["attempted_event"]


class DocumentLockedException(RefundException):
    """Raised when a refund document may not be deleted by the actor."""

    def __init__(self, document_id: int, reason: str):
        super().__init__(
            f"Refund document {document_id} cannot be deleted: {reason}",
            f"{self.CODE_PREFIX}003",
            {"document_id": document_id, "reason": reason},
        )


# Concurrency exceptions
class ConcurrentModificationException(LodgePayException):
    """Raised when a concurrent modification is detected."""

    def __init__(
        self,
        message: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        details = {}
        if expected_version is not None:
            details["expected_version"] = expected_version
        if actual_version is not None:
            details["actual_version"] = actual_version
        super().__init__(message, "CONCURRENCY_001", details)


# Security exceptions
class SecurityException(LodgePayException):
    """Base exception for security-related errors."""

    CODE_PREFIX = "SECURITY_"


class AuthenticationException(SecurityException):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, f"{self.CODE_PREFIX}001", {})


class ForbiddenException(SecurityException):
    """Raised when a user is forbidden from accessing a resource."""

    def __init__(self, resource_type: str, resource_id: Any = None):
        details = {"resource_type": resource_type}
        if resource_id is not None:
            details["resource_id"] = resource_id
        super().__init__(
            f"Access forbidden to {resource_type}"
            + (f" with ID {resource_id}" if resource_id else ""),
            f"{self.CODE_PREFIX}002",
            details,
        )


# Integration exceptions
class IntegrationException(LodgePayException):
    """Base exception for integration-related errors."""

    CODE_PREFIX = "INTEGRATION_"


class ExternalServiceException(IntegrationException):
    """Raised when an external service call fails."""

    def __init__(
        self, service_name: str, message: str, original_error: Optional[str] = None
    ):
        details = {"service_name": service_name}
        if original_error:
            details["original_error"] = original_error
        super().__init__(
            f"Error from external service {service_name}: {message}",
            f"{self.CODE_PREFIX}001",
            details,
        )


# Business rule exceptions
class BusinessRuleException(LodgePayException):
    """Raised when a business rule or constraint is violated."""

    CODE_PREFIX = "BUSINESS_"

    def __init__(
        self,
        message: str,
        rule_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if rule_name:
            error_details["rule_name"] = rule_name
        super().__init__(message, f"{self.CODE_PREFIX}001", error_details)
