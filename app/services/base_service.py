# File: app/services/base_service.py

from typing import TypeVar, Generic, List, Optional, Type, Dict, Any
from contextlib import contextmanager
from datetime import datetime
import logging

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.events import DomainEvent, EventBus, global_event_bus
from app.core.exceptions import (
    LodgePayException,
    ConcurrentModificationException,
    EntityNotFoundException,
)
from app.repositories.base_repository import BaseRepository

T = TypeVar("T")
logger = logging.getLogger(__name__)


class BaseService(Generic[T]):
    """
    Base service for all LodgePay services.

    Provides common functionality including:
    - Transaction management with post-commit event publishing
    - Error handling and standardization
    - Logging
    """

    def __init__(
            self,
            session: Session,
            repository_class: Optional[Type[BaseRepository]] = None,
            repository: Optional[BaseRepository] = None,
            event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize service with dependencies.

        Args:
            session: Database session for persistence operations
            repository_class: Repository class to instantiate (optional if repository is provided)
            repository: Repository instance (optional if repository_class is provided)
            event_bus: Event bus for domain events, defaults to the global bus
        """
        self.session = session

        if repository is not None:
            self.repository = repository
        elif repository_class is not None:
            self.repository = repository_class(session)
        else:
            self.repository = None

        self.event_bus = event_bus if event_bus is not None else global_event_bus
        self._pending_events: List[DomainEvent] = []

    @contextmanager
    def transaction(self):
        """
        Provide a transactional scope around operations.

        Events queued with ``publish_after_commit`` are published only once
        the commit succeeds and are discarded on rollback.

        Yields:
            None

        Raises:
            Exception: Any exception that occurs during transaction execution
        """
        try:
            yield
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            self._pending_events.clear()
            if isinstance(e, LodgePayException):
                logger.info(f"Transaction rolled back: {e.code} {e.message}")
            else:
                logger.error(f"Transaction failed: {str(e)}", exc_info=True)

            transformed = self._transform_error(e)
            if transformed:
                raise transformed from e
            raise

        events, self._pending_events = self._pending_events, []
        for event in events:
            self.event_bus.publish(event)

    def publish_after_commit(self, event: DomainEvent) -> None:
        """
        Queue a domain event for publication after the current transaction commits.

        Args:
            event: Event to publish
        """
        self._pending_events.append(event)

    def get_by_id(self, id: int) -> Optional[T]:
        """
        Get entity by ID.

        Args:
            id: Entity ID to retrieve

        Returns:
            Entity if found, None otherwise
        """
        return self.repository.get_by_id(id)

    def get_entity_or_404(self, id: int) -> T:
        """
        Get an entity by ID or raise a not-found exception.

        Args:
            id: Entity ID to retrieve

        Returns:
            Entity if found

        Raises:
            EntityNotFoundException: If entity is not found
        """
        entity = self.get_by_id(id)
        if not entity:
            raise self._not_found(id)
        return entity

    def _not_found(self, id: int) -> LodgePayException:
        entity_name = self.repository.model.__name__ if self.repository else "Entity"
        return EntityNotFoundException(entity_name, id)

    def _log_operation(
            self,
            operation: str,
            entity_type: str,
            entity_id: Any = None,
            user_id: Optional[int] = None,
            details: Dict[str, Any] = None,
    ) -> None:
        """
        Log an operation for auditing purposes.

        Args:
            operation: Operation name (create, update, transition, etc.)
            entity_type: Type of entity being operated on
            entity_id: Optional entity ID
            user_id: Acting user
            details: Optional operation details
        """
        log_data = {
            "operation": operation,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user_id": user_id,
            "timestamp": datetime.now().isoformat(),
            "details": details,
        }

        logger.info(f"{operation.upper()} {entity_type} {entity_id}", extra=log_data)

    def _transform_error(self, error: Exception) -> Optional[LodgePayException]:
        """
        Transform generic exceptions to specific domain exceptions.

        Override this method in service subclasses to handle
        specific error cases.

        Args:
            error: The original exception

        Returns:
            Transformed domain exception, or None to re-raise original
        """
        if isinstance(error, StaleDataError):
            return ConcurrentModificationException(
                "The record was modified by another operation; reload and retry"
            )
        return None
