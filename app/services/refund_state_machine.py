# File: app/services/refund_state_machine.py
"""
Refund request transition table.

Every legal move is one row keyed by ``(current status, event)``. A pair
that is not in the table is illegal, and the caller gets an
``InvalidStatusTransitionException`` naming the current status and the
attempted event. No "closest" transition is guessed.

The table is checked when this module is imported: every status must be
either terminal or have a way out, terminal statuses must have none, and
every target must be a known status. Adding a status without deciding its
transitions therefore fails at import time.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Tuple, Union

from app.core.exceptions import InvalidStatusTransitionException
from app.core.validation import coerce_enum
from app.db.models.enums import RefundEvent, RefundStatus

# Notification template key for a newly submitted request
REFUND_REQUESTED = "refund_requested"


@dataclass(frozen=True)
class Transition:
    """One legal move of a refund request."""

    source: RefundStatus
    event: RefundEvent
    target: RefundStatus
    required_fields: Tuple[str, ...]
    notification: str

    def missing_fields(self, payload: Mapping[str, Any]) -> List[str]:
        """Required payload fields that are absent or blank."""
        missing = []
        for field in self.required_fields:
            value = payload.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field)
        return missing


TERMINAL_STATUSES: FrozenSet[RefundStatus] = frozenset(
    {RefundStatus.REJECTED, RefundStatus.COMPLETED, RefundStatus.FAILED}
)

_ROWS = (
    Transition(
        RefundStatus.REQUESTED,
        RefundEvent.START_REVIEW,
        RefundStatus.UNDER_REVIEW,
        (),
        "refund_under_review",
    ),
    Transition(
        RefundStatus.UNDER_REVIEW,
        RefundEvent.APPROVE,
        RefundStatus.APPROVED,
        ("approved_amount",),
        "refund_approved",
    ),
    Transition(
        RefundStatus.UNDER_REVIEW,
        RefundEvent.REJECT,
        RefundStatus.REJECTED,
        ("review_notes",),
        "refund_rejected",
    ),
    Transition(
        RefundStatus.APPROVED,
        RefundEvent.START_PROCESSING,
        RefundStatus.PROCESSING,
        (),
        "refund_processing_started",
    ),
    Transition(
        RefundStatus.PROCESSING,
        RefundEvent.COMPLETE,
        RefundStatus.COMPLETED,
        ("refunded_amount", "credit_memo_id"),
        "refund_completed",
    ),
    Transition(
        RefundStatus.PROCESSING,
        RefundEvent.FAIL,
        RefundStatus.FAILED,
        ("failure_reason",),
        "refund_failed",
    ),
)

TRANSITIONS: Dict[Tuple[RefundStatus, RefundEvent], Transition] = {
    (row.source, row.event): row for row in _ROWS
}


def _check_table() -> None:
    if len(TRANSITIONS) != len(_ROWS):
        raise RuntimeError("Refund transition table has duplicate (status, event) rows")
    sources = {source for source, _ in TRANSITIONS}
    for status in RefundStatus:
        if status in TERMINAL_STATUSES and status in sources:
            raise RuntimeError(f"Terminal refund status {status.value} has outgoing transitions")
        if status not in TERMINAL_STATUSES and status not in sources:
            raise RuntimeError(f"Refund status {status.value} has no outgoing transition")
    for row in _ROWS:
        if not isinstance(row.target, RefundStatus):
            raise RuntimeError(f"Transition {row.event} targets an unknown status")
    unused = set(RefundEvent) - {event for _, event in TRANSITIONS}
    if unused:
        raise RuntimeError(f"Refund events without a transition: {sorted(e.value for e in unused)}")


_check_table()


def allowed_events(status: RefundStatus) -> List[RefundEvent]:
    """Events that are legal from a status, in table order."""
    return [row.event for row in _ROWS if row.source is status]


def lookup(status: RefundStatus, event: Union[RefundEvent, str], refund_id: int = None) -> Transition:
    """
    Find the transition for a status and event.

    Args:
        status: Current status of the request
        event: Attempted event, as a member or its string value
        refund_id: Request ID, included in the error details

    Returns:
        The matching transition

    Raises:
        InvalidStatusTransitionException: If the pair is not in the table
    """
    member = coerce_enum(RefundEvent, event)
    transition = TRANSITIONS.get((status, member)) if member is not None else None
    if transition is None:
        raise InvalidStatusTransitionException(
            status.value,
            member.value if member is not None else str(event),
            refund_id=refund_id,
            allowed_events=[e.value for e in allowed_events(status)],
        )
    return transition


def is_terminal(status: RefundStatus) -> bool:
    return status in TERMINAL_STATUSES
