# File: app/services/refund_service.py
"""
Refund request service for LodgePay.

This module drives refund requests through the transition table in
``app.services.refund_state_machine``:

- Each transition updates the request and appends its status history row
  in one transaction. The UPDATE is a compare-and-swap on the request's
  version, so of two concurrent transitions from the same state only one
  commits; the other reports the state that won.
- Notifications are published only after the transaction commits.
- Entering ``processing`` commits first and then calls the payment
  provider outside the transaction. A decline moves the request to
  ``failed``; acceptance waits for the provider callback.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.events import EventBus, RefundStatusChanged
from app.core.exceptions import (
    BusinessRuleException,
    ConcurrentModificationException,
    ExternalServiceException,
    ForbiddenException,
    InvalidStatusTransitionException,
    RefundNotFoundException,
    ValidationException,
)
from app.core.security import Actor, SYSTEM_ACTOR
from app.core.validation import ValidationResult, coerce_decimal
from app.db.models.base import utc_now
from app.db.models.enums import RefundEvent, RefundStatus
from app.db.models.refund import RefundRequest
from app.repositories.refund_repository import (
    ACTIVE_STATUSES,
    RefundRequestRepository,
    RefundStatusHistoryRepository,
)
from app.services.base_service import BaseService
from app.services.payment_provider import (
    ManualPaymentProvider,
    PaymentProvider,
    ProviderRefundRequest,
    ProviderRefundResult,
)
from app.services.refund_state_machine import (
    REFUND_REQUESTED,
    Transition,
    allowed_events,
    lookup,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# History ``event`` value for the row written when a request is submitted
SUBMIT_EVENT = "submit"


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class RefundService(BaseService[RefundRequest]):
    """
    Service for managing refund requests in the LodgePay system.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[RefundRequestRepository] = None,
        event_bus: Optional[EventBus] = None,
        payment_provider: Optional[PaymentProvider] = None,
    ):
        """
        Initialize RefundService with dependencies.

        Args:
            session: Database session for persistence operations
            repository: Optional refund request repository
            event_bus: Optional event bus for publishing events
            payment_provider: Collaborator that pays refunds out
        """
        super().__init__(
            session,
            repository=repository or RefundRequestRepository(session),
            event_bus=event_bus,
        )
        self.history_repository = RefundStatusHistoryRepository(session)
        self.payment_provider = payment_provider or ManualPaymentProvider()

    def _not_found(self, id: int):
        return RefundNotFoundException(id)

    # Access

    @staticmethod
    def ensure_can_view(request: RefundRequest, actor: Actor) -> None:
        """
        Staff see every request; guests only their own.

        Raises:
            ForbiddenException: If the actor may not see the request
        """
        if actor.is_staff or request.requested_by == actor.id:
            return
        raise ForbiddenException("RefundRequest", request.id)

    def get_refund_request(self, refund_id: int, actor: Actor) -> RefundRequest:
        request = self.get_entity_or_404(refund_id)
        self.ensure_can_view(request, actor)
        return request

    def view_refund_request(self, refund_id: int, actor: Actor) -> RefundRequest:
        """
        Open a request for reading.

        The first time staff open a ``requested`` request it moves to
        ``under_review``.
        """
        request = self.get_refund_request(refund_id, actor)
        if actor.is_staff and request.status is RefundStatus.REQUESTED:
            try:
                request = self.transition(
                    refund_id,
                    RefundEvent.START_REVIEW,
                    actor,
                    change_reason="Opened for review",
                )
            except InvalidStatusTransitionException:
                # Another reviewer got there first
                request = self.get_entity_or_404(refund_id)
        return request

    def list_refund_requests(
        self,
        actor: Actor,
        status: Optional[RefundStatus] = None,
        booking_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[RefundRequest]:
        """List requests visible to the actor, newest first."""
        return self.repository.search(
            status=status,
            booking_id=booking_id,
            requested_by=None if actor.is_staff else actor.id,
            skip=skip,
            limit=limit,
        )

    def get_booking_refund_summary(
        self, booking_id: int, actor: Actor, amount_paid: Optional[Decimal] = None
    ) -> Dict[str, Any]:
        """
        Summarize refunds for a booking.

        ``refund_status`` is ``none`` until a request completes, ``full``
        once completed refunds reach ``amount_paid`` and ``partial``
        otherwise. Without ``amount_paid`` a booking with refunds is never
        reported as ``full`` and ``available_for_refund`` is None.

        Args:
            booking_id: ID of the booking
            actor: Staff, or the guest who requested the booking's refunds
            amount_paid: What the guest paid for the booking, if known

        Returns:
            Totals, the refund status and the open and completed requests

        Raises:
            ForbiddenException: If a guest asks about someone else's booking
        """
        requests = self.repository.list_for_booking(booking_id)
        if not actor.is_staff and any(r.requested_by != actor.id for r in requests):
            raise ForbiddenException("Booking", booking_id)

        total_refunded = _money(self.repository.total_refunded(booking_id))
        total_paid = _money(Decimal(amount_paid)) if amount_paid is not None else None

        if total_refunded <= 0:
            refund_status = "none"
        elif total_paid is not None and total_refunded >= total_paid:
            refund_status = "full"
        else:
            refund_status = "partial"

        pending = [r for r in requests if r.status in ACTIVE_STATUSES]
        return {
            "booking_id": booking_id,
            "total_paid": total_paid,
            "total_refunded": total_refunded,
            "available_for_refund": (
                max(total_paid - total_refunded, Decimal("0.00")) if total_paid is not None else None
            ),
            "refund_status": refund_status,
            "active_refund_requests": len(pending),
            "pending_refund_requests": pending,
            "completed_refund_requests": [
                r for r in requests if r.status is RefundStatus.COMPLETED
            ],
        }

    # Creation

    def create_refund_request(self, data: Dict[str, Any], actor: Actor) -> RefundRequest:
        """
        Submit a refund request for a booking.

        Args:
            data: booking_id, requested_amount, and optionally currency,
                reason, payment_reference and available_amount (the most
                the booking can refund). Staff may set requested_by.
            actor: Submitting user

        Returns:
            The new request in ``requested`` status

        Raises:
            ValidationException: If the amount is missing, not positive or too large
            BusinessRuleException: If the booking already has an open request
        """
        result = ValidationResult()
        booking_id = data.get("booking_id")
        if isinstance(booking_id, bool) or not isinstance(booking_id, int):
            result.add_error("booking_id", "Booking ID is required", "MISSING_FIELD")

        amount = coerce_decimal(data.get("requested_amount"))
        if amount is None:
            result.add_error("requested_amount", "Requested amount is required", "MISSING_FIELD")
        elif amount <= 0:
            result.add_error(
                "requested_amount", "Requested amount must be greater than zero", "NON_POSITIVE_AMOUNT"
            )
        else:
            available = coerce_decimal(data.get("available_amount"))
            if available is not None and amount > available:
                result.add_error(
                    "requested_amount",
                    f"Requested amount exceeds the refundable {available}",
                    "AMOUNT_EXCEEDS_AVAILABLE",
                )
        result.raise_if_invalid("Invalid refund request")

        requested_by = actor.id
        if actor.is_staff and data.get("requested_by") is not None:
            requested_by = data["requested_by"]

        with self.transaction():
            existing = self.repository.get_active_for_booking(booking_id)
            if existing is not None:
                raise BusinessRuleException(
                    f"Booking {booking_id} already has an open refund request ({existing.id})",
                    rule_name="ACTIVE_REFUND_EXISTS",
                    details={"booking_id": booking_id, "refund_id": existing.id},
                )

            request = self.repository.create(
                {
                    "booking_id": booking_id,
                    "requested_by": requested_by,
                    "status": RefundStatus.REQUESTED,
                    "currency": data.get("currency") or settings.DEFAULT_CURRENCY,
                    "reason": data.get("reason"),
                    "requested_amount": _money(amount),
                    "payment_reference": data.get("payment_reference"),
                }
            )
            self.history_repository.create(
                {
                    "refund_request_id": request.id,
                    "from_status": None,
                    "to_status": RefundStatus.REQUESTED,
                    "event": SUBMIT_EVENT,
                    "changed_by": actor.id,
                    "change_reason": data.get("reason"),
                    "details": {"requested_amount": str(_money(amount))},
                }
            )
            self.publish_after_commit(
                RefundStatusChanged(
                    refund_id=request.id,
                    booking_id=booking_id,
                    requested_by=requested_by,
                    previous_status=None,
                    new_status=RefundStatus.REQUESTED.value,
                    refund_event=SUBMIT_EVENT,
                    notification_type=REFUND_REQUESTED,
                    user_id=actor.id,
                    metadata={"requested_amount": str(request.requested_amount)},
                )
            )

        self._log_operation("create", "RefundRequest", request.id, actor.id, {"booking_id": booking_id})
        return request

    # Transitions

    def transition(
        self,
        refund_id: int,
        event: Union[RefundEvent, str],
        actor: Actor,
        payload: Optional[Dict[str, Any]] = None,
        change_reason: Optional[str] = None,
    ) -> RefundRequest:
        """
        Apply an event to a refund request.

        Args:
            refund_id: Request to move
            event: Event from the transition table
            actor: Staff member (or the system actor for provider callbacks)
            payload: Fields the transition requires, plus optional extras
            change_reason: Free text stored on the history row

        Returns:
            The request in its new status

        Raises:
            ForbiddenException: If the actor is not staff
            InvalidStatusTransitionException: If the event is illegal from the
                current status, including when a concurrent transition won
            ValidationException: If the payload is missing or inconsistent
        """
        payload = dict(payload or {})
        try:
            with self.transaction():
                request = self.get_entity_or_404(refund_id)
                if not actor.is_staff:
                    raise ForbiddenException("RefundRequest", refund_id)

                step = lookup(request.status, event, refund_id)
                previous = request.status
                changes = self._transition_changes(request, step, payload, actor)

                # Compare-and-swap on version; the history row is written after it
                self.repository.update(request, changes)
                self.history_repository.create(
                    {
                        "refund_request_id": request.id,
                        "from_status": previous,
                        "to_status": step.target,
                        "event": step.event.value,
                        "changed_by": actor.id,
                        "change_reason": change_reason,
                        "details": self._history_details(changes),
                    }
                )
                self.publish_after_commit(
                    RefundStatusChanged(
                        refund_id=request.id,
                        booking_id=request.booking_id,
                        requested_by=request.requested_by,
                        previous_status=previous.value,
                        new_status=step.target.value,
                        refund_event=step.event.value,
                        notification_type=step.notification,
                        user_id=actor.id,
                        metadata=self._history_details(changes),
                    )
                )
        except ConcurrentModificationException:
            current = self.get_entity_or_404(refund_id)
            attempted = getattr(event, "value", event)
            logger.warning(
                f"Refund {refund_id}: '{attempted}' lost a concurrent update; "
                f"status is now {current.status.value}"
            )
            raise InvalidStatusTransitionException(
                current.status.value,
                attempted,
                refund_id=refund_id,
                allowed_events=[e.value for e in allowed_events(current.status)],
            )

        logger.info(
            f"Refund {refund_id}: {previous.value} -> {step.target.value} "
            f"via {step.event.value} by user {actor.id}"
        )
        return request

    def _parse_amount(self, payload: Dict[str, Any], field: str) -> Decimal:
        amount = coerce_decimal(payload.get(field))
        if amount is None or not amount.is_finite():
            raise ValidationException(
                f"Invalid {field}", {field: ["Must be a number"]}, rule_name="INVALID_VALUE"
            )
        if amount <= 0:
            raise ValidationException(
                f"{field} must be greater than zero",
                {field: ["Must be greater than zero"]},
                rule_name="NON_POSITIVE_AMOUNT",
            )
        return _money(amount)

    def _transition_changes(
        self,
        request: RefundRequest,
        step: Transition,
        payload: Dict[str, Any],
        actor: Actor,
    ) -> Dict[str, Any]:
        """Validate a transition payload and return the columns it sets."""
        missing = step.missing_fields(payload)
        if missing:
            raise ValidationException(
                f"'{step.event.value}' requires {', '.join(missing)}",
                {field: ["This field is required"] for field in missing},
                rule_name="MISSING_TRANSITION_FIELD",
            )

        now = utc_now()
        changes: Dict[str, Any] = {"status": step.target}

        def set_once(field: str, value: Any) -> None:
            # Populated fields are never overwritten
            if value is not None and getattr(request, field) is None:
                changes[field] = value

        if step.event is RefundEvent.START_REVIEW:
            set_once("reviewed_by", actor.id)
            set_once("reviewed_at", now)

        elif step.event is RefundEvent.APPROVE:
            approved = self._parse_amount(payload, "approved_amount")
            if approved > request.requested_amount:
                raise ValidationException(
                    f"Approved amount {approved} exceeds requested amount {request.requested_amount}",
                    {"approved_amount": ["Cannot exceed the requested amount"]},
                    rule_name="AMOUNT_EXCEEDS_REQUESTED",
                )
            set_once("approved_amount", approved)
            set_once("review_notes", payload.get("review_notes"))
            set_once("reviewed_by", actor.id)
            set_once("reviewed_at", now)

        elif step.event is RefundEvent.REJECT:
            set_once("review_notes", str(payload["review_notes"]).strip())
            set_once("reviewed_by", actor.id)
            set_once("reviewed_at", now)

        elif step.event is RefundEvent.START_PROCESSING:
            set_once("processed_by", actor.id)
            set_once("processed_at", now)

        elif step.event is RefundEvent.COMPLETE:
            refunded = self._parse_amount(payload, "refunded_amount")
            if refunded > request.approved_amount:
                raise ValidationException(
                    f"Refunded amount {refunded} exceeds approved amount {request.approved_amount}",
                    {"refunded_amount": ["Cannot exceed the approved amount"]},
                    rule_name="AMOUNT_EXCEEDS_APPROVED",
                )
            set_once("refunded_amount", refunded)
            set_once("credit_memo_id", str(payload["credit_memo_id"]).strip())
            set_once("gateway_refund_id", payload.get("gateway_refund_id"))
            set_once("completed_at", now)

        elif step.event is RefundEvent.FAIL:
            set_once("failure_reason", str(payload["failure_reason"]).strip())

        return changes

    @staticmethod
    def _history_details(changes: Dict[str, Any]) -> Dict[str, Any]:
        details = {}
        for field, value in changes.items():
            if field in ("status", "reviewed_at", "processed_at", "completed_at"):
                continue
            details[field] = value if isinstance(value, (int, str)) else str(value)
        return details

    def start_review(self, refund_id: int, actor: Actor, change_reason: Optional[str] = None) -> RefundRequest:
        return self.transition(refund_id, RefundEvent.START_REVIEW, actor, change_reason=change_reason)

    def approve(
        self,
        refund_id: int,
        actor: Actor,
        approved_amount: Decimal,
        review_notes: Optional[str] = None,
        change_reason: Optional[str] = None,
    ) -> RefundRequest:
        return self.transition(
            refund_id,
            RefundEvent.APPROVE,
            actor,
            {"approved_amount": approved_amount, "review_notes": review_notes},
            change_reason,
        )

    def reject(
        self, refund_id: int, actor: Actor, review_notes: str, change_reason: Optional[str] = None
    ) -> RefundRequest:
        return self.transition(
            refund_id, RefundEvent.REJECT, actor, {"review_notes": review_notes}, change_reason
        )

    def complete(
        self,
        refund_id: int,
        actor: Actor,
        refunded_amount: Decimal,
        credit_memo_id: str,
        change_reason: Optional[str] = None,
    ) -> RefundRequest:
        return self.transition(
            refund_id,
            RefundEvent.COMPLETE,
            actor,
            {"refunded_amount": refunded_amount, "credit_memo_id": credit_memo_id},
            change_reason,
        )

    def fail(
        self, refund_id: int, actor: Actor, failure_reason: str, change_reason: Optional[str] = None
    ) -> RefundRequest:
        return self.transition(
            refund_id, RefundEvent.FAIL, actor, {"failure_reason": failure_reason}, change_reason
        )

    # Payment provider

    def start_processing(self, refund_id: int, actor: Actor) -> RefundRequest:
        """
        Move an approved request to ``processing`` and ask the provider to pay it.

        The transition commits before the provider is called. A provider
        decline or error then fails the request; a provider that settles
        immediately completes it.

        Returns:
            The request after the provider's answer has been applied
        """
        request = self.transition(refund_id, RefundEvent.START_PROCESSING, actor)
        provider_request = ProviderRefundRequest(
            request_id=request.id,
            approved_amount=request.approved_amount,
            original_payment_reference=request.payment_reference,
            currency=request.currency,
        )

        try:
            result = self.payment_provider.request_refund(provider_request)
        except Exception as e:
            error = ExternalServiceException("payment_provider", str(e), type(e).__name__)
            logger.error(f"Refund {refund_id}: {error.message}", exc_info=True)
            result = ProviderRefundResult(accepted=False, reason=error.message)

        if not result.accepted:
            logger.warning(f"Payment provider declined refund {refund_id}: {result.reason}")
            return self.fail(
                refund_id,
                SYSTEM_ACTOR,
                result.reason or "Refund declined by payment provider",
                change_reason="Declined by payment provider",
            )

        if result.settled:
            return self.transition(
                refund_id,
                RefundEvent.COMPLETE,
                SYSTEM_ACTOR,
                {
                    "refunded_amount": result.refunded_amount,
                    "credit_memo_id": result.credit_memo_id,
                    "gateway_refund_id": result.gateway_refund_id,
                },
                change_reason="Settled by payment provider",
            )

        if result.gateway_refund_id:
            request = self._record_gateway_reference(refund_id, result.gateway_refund_id)
        return request

    def _record_gateway_reference(self, refund_id: int, gateway_refund_id: str) -> RefundRequest:
        for attempt in (1, 2):
            try:
                with self.transaction():
                    request = self.get_entity_or_404(refund_id)
                    if request.gateway_refund_id is None:
                        self.repository.update(request, {"gateway_refund_id": gateway_refund_id})
                return request
            except ConcurrentModificationException:
                if attempt == 2:
                    raise
                logger.warning(f"Retrying gateway reference update for refund {refund_id}")

    def handle_provider_result(
        self,
        succeeded: bool,
        refund_id: Optional[int] = None,
        gateway_refund_id: Optional[str] = None,
        refunded_amount: Optional[Decimal] = None,
        credit_memo_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> RefundRequest:
        """
        Apply the provider's asynchronous outcome to a processing request.

        Args:
            succeeded: Whether the money was returned
            refund_id: Request ID, if the provider echoes it
            gateway_refund_id: Provider reference, used when refund_id is absent
            refunded_amount: Amount returned on success
            credit_memo_id: Credit memo issued on success
            reason: Failure reason

        Raises:
            RefundNotFoundException: If no request matches
            InvalidStatusTransitionException: If the request is not processing
        """
        if refund_id is not None:
            request = self.repository.get_by_id(refund_id)
        elif gateway_refund_id:
            request = self.repository.get_by_gateway_refund_id(gateway_refund_id)
        else:
            raise ValidationException(
                "refund_id or gateway_refund_id is required",
                {"refund_id": ["Provide refund_id or gateway_refund_id"]},
                rule_name="MISSING_FIELD",
            )
        if request is None:
            raise RefundNotFoundException(refund_id if refund_id is not None else gateway_refund_id)

        if succeeded:
            return self.transition(
                request.id,
                RefundEvent.COMPLETE,
                SYSTEM_ACTOR,
                {
                    "refunded_amount": refunded_amount,
                    "credit_memo_id": credit_memo_id,
                    "gateway_refund_id": gateway_refund_id,
                },
                change_reason="Confirmed by payment provider",
            )
        return self.transition(
            request.id,
            RefundEvent.FAIL,
            SYSTEM_ACTOR,
            {"failure_reason": reason or "Refund failed at payment provider"},
            change_reason="Reported by payment provider",
        )
