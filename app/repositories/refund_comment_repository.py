# File: app/repositories/refund_comment_repository.py

from typing import List

from sqlalchemy import select

from app.db.models.refund import RefundComment
from app.repositories.base_repository import BaseRepository


class RefundCommentRepository(BaseRepository[RefundComment]):
    """Append-only access to refund comments."""

    model = RefundComment

    def list_for_request(
        self, refund_id: int, include_internal: bool = False
    ) -> List[RefundComment]:
        """
        Comments on a request, oldest first.

        Args:
            refund_id: Refund request ID
            include_internal: Whether staff-only comments are returned
        """
        stmt = select(RefundComment).where(RefundComment.refund_request_id == refund_id)
        if not include_internal:
            stmt = stmt.where(RefundComment.is_internal.is_(False))
        stmt = stmt.order_by(RefundComment.created_at, RefundComment.id)
        return list(self.session.execute(stmt).scalars().all())
