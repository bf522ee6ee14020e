# File: app/repositories/base_repository.py

from typing import Generic, TypeVar, Dict, Any, Optional, List, Type
from sqlalchemy.orm import Session
from sqlalchemy import select, func

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Base repository class providing common data access operations for all
    entities using modern SQLAlchemy select() syntax.

    Repositories flush but never commit; the calling service owns the
    transaction boundary.

    Attributes:
        session (Session): The SQLAlchemy session for database operations
        model (Type[T]): The SQLAlchemy model class this repository manages
    """

    model: Optional[Type[T]] = None

    def __init__(self, session: Session, model: Optional[Type[T]] = None):
        """
        Initialize the repository with a database session and the specific model.

        Args:
            session (Session): SQLAlchemy database session
            model (Type[T]): The model class; subclasses usually set it as a class attribute
        """
        self.session = session
        if model is not None:
            self.model = model

    def _get_model(self) -> Type[T]:
        """Ensures the model is set before use."""
        if self.model is None:
            raise TypeError(f"Repository model is not set for {self.__class__.__name__}")
        return self.model

    def get_by_id(self, id: int) -> Optional[T]:
        """
        Retrieve an entity by its primary key ID.

        Args:
            id (int): The primary key ID of the entity

        Returns:
            Optional[T]: The entity if found, None otherwise
        """
        return self.session.get(self._get_model(), id)

    def list(self, skip: int = 0, limit: int = 100, **filters) -> List[T]:
        """
        Retrieve a list of entities with pagination.

        Args:
            skip (int): Number of records to skip (for pagination)
            limit (int): Maximum number of records to return
            **filters: Additional filters to apply (field=value pairs)

        Returns:
            List[T]: List of entities matching the criteria
        """
        model_class = self._get_model()
        stmt = select(model_class)

        for key, value in filters.items():
            if hasattr(model_class, key):
                stmt = stmt.where(getattr(model_class, key) == value)

        stmt = stmt.order_by(model_class.id).offset(skip).limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def create(self, data: Dict[str, Any]) -> T:
        """
        Create a new entity and flush it so its primary key is assigned.

        Args:
            data (Dict[str, Any]): Dictionary containing entity field values

        Returns:
            T: The created entity
        """
        model_class = self._get_model()
        model_columns = {c.name for c in model_class.__table__.columns}
        entity = model_class(**{k: v for k, v in data.items() if k in model_columns})
        self.session.add(entity)
        self.session.flush()
        return entity

    def update(self, entity: T, data: Dict[str, Any]) -> T:
        """
        Apply column values to an entity and flush.

        Args:
            entity: The entity to update
            data (Dict[str, Any]): Dictionary containing the fields to update

        Returns:
            T: The updated entity
        """
        columns = entity.__table__.columns.keys()
        for key, value in data.items():
            if key in columns:
                setattr(entity, key, value)
        self.session.flush()
        return entity

    def delete(self, entity: T) -> None:
        """
        Delete an entity and flush.

        Args:
            entity: The entity to delete
        """
        self.session.delete(entity)
        self.session.flush()

    def count(self, **filters) -> int:
        """
        Count entities matching the given filters.

        Args:
            **filters: Filters to apply (field=value pairs)

        Returns:
            int: Count of matching entities
        """
        model_class = self._get_model()
        stmt = select(func.count()).select_from(model_class)
        for key, value in filters.items():
            if hasattr(model_class, key):
                stmt = stmt.where(getattr(model_class, key) == value)
        return self.session.execute(stmt).scalar_one()
