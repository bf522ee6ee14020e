# File: app/services/refund_document_service.py
"""
Refund document service for LodgePay.

Documents are evidence for a refund request. Only metadata is stored; the
caller has already put the bytes somewhere and passes ``storage_path``.
Once staff verify a document it is permanent: ``can_delete`` refuses it
for everyone, including the uploader.
"""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.events import EventBus, RefundDocumentUploaded
from app.core.exceptions import (
    BusinessRuleException,
    ConcurrentModificationException,
    DocumentLockedException,
    EntityNotFoundException,
    ForbiddenException,
)
from app.core.security import Actor
from app.core.validation import ValidationResult, coerce_enum
from app.db.models.base import utc_now
from app.db.models.enums import RefundDocumentType
from app.db.models.refund import RefundDocument
from app.repositories.refund_document_repository import RefundDocumentRepository
from app.services.base_service import BaseService
from app.services.refund_service import RefundService
from app.services.refund_state_machine import is_terminal

logger = logging.getLogger(__name__)


def can_delete(document: RefundDocument, actor: Actor) -> bool:
    """
    Whether an actor may delete a document.

    True only for the original uploader while the document is unverified
    and not already deleted. Staff get no exception.
    """
    return (
        document.uploaded_by == actor.id
        and not document.is_verified
        and not document.is_deleted
    )


def validate_document_metadata(data: Dict[str, Any]) -> ValidationResult:
    """Check upload metadata against the configured limits."""
    result = ValidationResult()

    file_name = (data.get("file_name") or "").strip()
    if not file_name:
        result.add_error("file_name", "File name is required", "MISSING_FIELD")
    elif len(file_name) > 255:
        result.add_error("file_name", "File name is too long", "INVALID_VALUE")

    if not (data.get("storage_path") or "").strip():
        result.add_error("storage_path", "Storage path is required", "MISSING_FIELD")

    file_type = (data.get("file_type") or "").strip().lower()
    if file_type not in settings.REFUND_DOCUMENT_ALLOWED_TYPES:
        result.add_error(
            "file_type",
            f"Unsupported file type '{file_type}'. "
            f"Allowed: {', '.join(settings.REFUND_DOCUMENT_ALLOWED_TYPES)}",
            "UNSUPPORTED_FILE_TYPE",
        )

    file_size = data.get("file_size")
    if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size <= 0:
        result.add_error("file_size", "File size must be a positive integer", "INVALID_VALUE")
    elif file_size > settings.REFUND_DOCUMENT_MAX_BYTES:
        result.add_error(
            "file_size",
            f"File exceeds the {settings.REFUND_DOCUMENT_MAX_BYTES} byte limit",
            "FILE_TOO_LARGE",
        )

    if coerce_enum(RefundDocumentType, data.get("document_type")) is None:
        result.add_error(
            "document_type",
            f"Document type must be one of: {', '.join(t.value for t in RefundDocumentType)}",
            "INVALID_VALUE",
        )
    return result


class RefundDocumentService(BaseService[RefundDocument]):
    """
    Service for refund document metadata.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[RefundDocumentRepository] = None,
        event_bus: Optional[EventBus] = None,
        refund_service: Optional[RefundService] = None,
    ):
        super().__init__(
            session,
            repository=repository or RefundDocumentRepository(session),
            event_bus=event_bus,
        )
        self.refund_service = refund_service or RefundService(session, event_bus=event_bus)

    def _not_found(self, id: int):
        return EntityNotFoundException("RefundDocument", id)

    def upload_document(self, refund_id: int, data: Dict[str, Any], actor: Actor) -> RefundDocument:
        """
        Attach a document to a refund request.

        Args:
            refund_id: Request the document supports
            data: file_name, file_size, file_type, storage_path, document_type
                and an optional description
            actor: Uploader; the requester or staff

        Returns:
            The stored document

        Raises:
            ValidationException: If the metadata is invalid
            ForbiddenException: If the actor may not see the request
            BusinessRuleException: If the request is already closed
        """
        validate_document_metadata(data).raise_if_invalid("Invalid document")

        with self.transaction():
            request = self.refund_service.get_refund_request(refund_id, actor)
            if is_terminal(request.status):
                raise BusinessRuleException(
                    f"Refund request {refund_id} is {request.status.value}; documents can no longer be added",
                    rule_name="REQUEST_CLOSED",
                    details={"refund_id": refund_id, "status": request.status.value},
                )

            document_type = coerce_enum(RefundDocumentType, data["document_type"])
            document = self.repository.create(
                {
                    "refund_request_id": request.id,
                    "uploaded_by": actor.id,
                    "file_name": data["file_name"].strip(),
                    "file_size": data["file_size"],
                    "file_type": data["file_type"].strip().lower(),
                    "storage_path": data["storage_path"].strip(),
                    "document_type": document_type,
                    "description": data.get("description"),
                }
            )
            self.publish_after_commit(
                RefundDocumentUploaded(
                    refund_id=request.id,
                    document_id=document.id,
                    document_type=document_type.value,
                    file_name=document.file_name,
                    user_id=actor.id,
                )
            )

        self._log_operation("upload", "RefundDocument", document.id, actor.id, {"refund_id": refund_id})
        return document

    def list_documents(
        self, refund_id: int, actor: Actor, include_deleted: bool = False
    ) -> List[RefundDocument]:
        """Documents on a request; deleted ones only for staff who ask."""
        self.refund_service.get_refund_request(refund_id, actor)
        return self.repository.list_for_request(
            refund_id, include_deleted=include_deleted and actor.is_staff
        )

    def verify_document(self, document_id: int, actor: Actor) -> RefundDocument:
        """
        Mark a document as verified evidence. Staff only.

        Verifying twice is a no-op that keeps the first verifier.
        """
        if not actor.is_staff:
            raise ForbiddenException("RefundDocument", document_id)

        try:
            with self.transaction():
                document = self.get_entity_or_404(document_id)
                if document.is_deleted:
                    raise DocumentLockedException(document_id, "Document has been deleted")
                if not document.is_verified:
                    self.repository.update(
                        document,
                        {"is_verified": True, "verified_by": actor.id, "verified_at": utc_now()},
                    )
        except ConcurrentModificationException:
            document = self.get_entity_or_404(document_id)
            if document.is_deleted:
                raise DocumentLockedException(document_id, "Document has been deleted")
            raise

        logger.info(f"Document {document_id} verified by user {document.verified_by}")
        return document

    @staticmethod
    def _delete_refusal(document: RefundDocument, actor: Actor) -> Optional[str]:
        if can_delete(document, actor):
            return None
        if document.is_deleted:
            return "Document has already been deleted"
        if document.is_verified:
            return "Verified documents are permanent"
        return "Only the uploader can delete this document"

    def delete_document(self, document_id: int, actor: Actor) -> RefundDocument:
        """
        Soft-delete a document.

        The check and the write are one compare-and-swap: if staff verify the
        document between them, the delete is refused.

        Raises:
            DocumentLockedException: If ``can_delete`` refuses the actor
        """
        try:
            with self.transaction():
                document = self.get_entity_or_404(document_id)
                reason = self._delete_refusal(document, actor)
                if reason:
                    raise DocumentLockedException(document_id, reason)
                self.repository.update(document, {"deleted_at": utc_now()})
        except ConcurrentModificationException:
            current = self.get_entity_or_404(document_id)
            reason = self._delete_refusal(current, actor) or "Document was modified concurrently"
            logger.warning(f"Document {document_id}: delete lost a concurrent update ({reason})")
            raise DocumentLockedException(document_id, reason)

        logger.info(f"Document {document_id} deleted by user {actor.id}")
        return document
