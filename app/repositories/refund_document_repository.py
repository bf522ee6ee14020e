# File: app/repositories/refund_document_repository.py

from typing import List

from sqlalchemy import select

from app.db.models.refund import RefundDocument
from app.repositories.base_repository import BaseRepository


class RefundDocumentRepository(BaseRepository[RefundDocument]):
    """Data access for refund documents. Deletion is soft only."""

    model = RefundDocument

    def list_for_request(
        self, refund_id: int, include_deleted: bool = False
    ) -> List[RefundDocument]:
        """
        Documents attached to a request, oldest first.

        Args:
            refund_id: Refund request ID
            include_deleted: Whether soft-deleted documents are returned
        """
        stmt = select(RefundDocument).where(RefundDocument.refund_request_id == refund_id)
        if not include_deleted:
            stmt = stmt.where(RefundDocument.deleted_at.is_(None))
        stmt = stmt.order_by(RefundDocument.uploaded_at, RefundDocument.id)
        return list(self.session.execute(stmt).scalars().all())
