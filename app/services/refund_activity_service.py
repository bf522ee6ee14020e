# File: app/services/refund_activity_service.py
"""
Refund activity ledger.

Comments and status history rows are both append-only. ``activity`` merges
them into one timeline at read time, most recent first. Internal comments
are staff-only and never appear in a guest's timeline.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.events import EventBus, RefundCommentAdded
from app.core.exceptions import ValidationException
from app.core.security import Actor
from app.db.models.refund import RefundComment, RefundStatusHistory
from app.repositories.refund_comment_repository import RefundCommentRepository
from app.repositories.refund_repository import RefundStatusHistoryRepository
from app.services.base_service import BaseService
from app.services.refund_service import RefundService

logger = logging.getLogger(__name__)

ACTIVITY_STATUS_CHANGE = "status_change"
ACTIVITY_COMMENT = "comment"

# Status changes sort after comments written in the same instant
_SOURCE_RANK = {ACTIVITY_COMMENT: 0, ACTIVITY_STATUS_CHANGE: 1}


@dataclass(frozen=True)
class RefundActivity:
    """One entry of the merged timeline."""

    activity_type: str
    activity_id: int
    activity_at: datetime
    actor_id: int
    description: str
    additional_info: Optional[str] = None
    is_internal: bool = False

    def sort_key(self):
        return (self.activity_at, _SOURCE_RANK[self.activity_type], self.activity_id)


def _status_label(status) -> str:
    return status.value if status is not None else "new"


def activity_from_history(row: RefundStatusHistory) -> RefundActivity:
    return RefundActivity(
        activity_type=ACTIVITY_STATUS_CHANGE,
        activity_id=row.id,
        activity_at=row.changed_at,
        actor_id=row.changed_by,
        description=f"{_status_label(row.from_status)} → {row.to_status.value}",
        additional_info=row.change_reason,
    )


def activity_from_comment(comment: RefundComment) -> RefundActivity:
    return RefundActivity(
        activity_type=ACTIVITY_COMMENT,
        activity_id=comment.id,
        activity_at=comment.created_at,
        actor_id=comment.user_id,
        description=comment.comment_text,
        is_internal=comment.is_internal,
    )


def merge_activity(
    history: List[RefundStatusHistory], comments: List[RefundComment]
) -> List[RefundActivity]:
    """
    Merge history rows and comments into one timeline, most recent first.

    Entries with equal timestamps are ordered by source and then by ID, so
    the result does not depend on the input order.
    """
    entries = [activity_from_history(row) for row in history]
    entries.extend(activity_from_comment(comment) for comment in comments)
    return sorted(entries, key=RefundActivity.sort_key, reverse=True)


class RefundActivityService(BaseService[RefundComment]):
    """
    Service for refund comments and the merged activity timeline.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[RefundCommentRepository] = None,
        event_bus: Optional[EventBus] = None,
        refund_service: Optional[RefundService] = None,
    ):
        super().__init__(
            session,
            repository=repository or RefundCommentRepository(session),
            event_bus=event_bus,
        )
        self.history_repository = RefundStatusHistoryRepository(session)
        self.refund_service = refund_service or RefundService(session, event_bus=event_bus)

    def add_comment(
        self,
        refund_id: int,
        actor: Actor,
        comment_text: str,
        is_internal: bool = False,
    ) -> RefundComment:
        """
        Add a comment to a refund request.

        Args:
            refund_id: Request to comment on
            actor: Author; guests may only comment on their own requests
            comment_text: Comment body, 1 to REFUND_COMMENT_MAX_LENGTH characters
            is_internal: Staff-only note. Ignored for non-staff authors.

        Returns:
            The stored comment

        Raises:
            RefundNotFoundException: If the request does not exist
            ForbiddenException: If the actor may not see the request
            ValidationException: If the text is empty or too long
        """
        text = (comment_text or "").strip()
        if not text:
            raise ValidationException(
                "Comment text is required",
                {"comment_text": ["Comment cannot be empty"]},
                rule_name="EMPTY_COMMENT",
            )
        if len(text) > settings.REFUND_COMMENT_MAX_LENGTH:
            raise ValidationException(
                f"Comment exceeds {settings.REFUND_COMMENT_MAX_LENGTH} characters",
                {"comment_text": [f"At most {settings.REFUND_COMMENT_MAX_LENGTH} characters"]},
                rule_name="COMMENT_TOO_LONG",
            )

        internal = bool(is_internal) and actor.is_staff
        with self.transaction():
            request = self.refund_service.get_refund_request(refund_id, actor)
            comment = self.repository.create(
                {
                    "refund_request_id": request.id,
                    "user_id": actor.id,
                    "comment_text": text,
                    "is_internal": internal,
                }
            )
            self.publish_after_commit(
                RefundCommentAdded(
                    refund_id=request.id,
                    comment_id=comment.id,
                    requested_by=request.requested_by,
                    is_internal=internal,
                    author_is_staff=actor.is_staff,
                    user_id=actor.id,
                )
            )

        logger.info(
            f"Comment {comment.id} added to refund {refund_id} by user {actor.id}"
            + (" (internal)" if internal else "")
        )
        return comment

    def list_comments(self, refund_id: int, actor: Actor) -> List[RefundComment]:
        """Comments visible to the actor, oldest first."""
        self.refund_service.get_refund_request(refund_id, actor)
        return self.repository.list_for_request(refund_id, include_internal=actor.is_staff)

    def status_history(self, refund_id: int, actor: Actor) -> List[RefundStatusHistory]:
        self.refund_service.get_refund_request(refund_id, actor)
        return self.history_repository.list_for_request(refund_id)

    def activity(
        self,
        refund_id: int,
        actor: Optional[Actor] = None,
        include_internal: Optional[bool] = None,
    ) -> List[RefundActivity]:
        """
        Merged timeline of a request, most recent first.

        Args:
            refund_id: Refund request ID
            actor: Reader; when given, access is checked and internal
                comments are shown to staff only
            include_internal: Explicit visibility for callers without an
                actor. Never widens what a non-staff actor sees.

        Returns:
            Timeline entries
        """
        if actor is not None:
            self.refund_service.get_refund_request(refund_id, actor)
            show_internal = actor.is_staff if include_internal is None else (
                include_internal and actor.is_staff
            )
        else:
            self.refund_service.get_entity_or_404(refund_id)
            show_internal = bool(include_internal)

        history = self.history_repository.list_for_request(refund_id)
        comments = self.repository.list_for_request(refund_id, include_internal=show_internal)
        return merge_activity(history, comments)
