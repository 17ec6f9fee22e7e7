"""
Base repository with common CRUD operations.
"""

from typing import TYPE_CHECKING, Any, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from chatledger.models.db import Base

if TYPE_CHECKING:
    from chatledger.db.store import UnitOfWork

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository providing common database operations.

    Repositories are bound to a unit of work: they share its SQLAlchemy
    session and append sync events through it.
    """

    def __init__(self, model: Type[ModelType], uow: "UnitOfWork"):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            uow: Unit of work the repository writes through
        """
        self.model = model
        self.uow = uow
        self.session: Session = uow.session

    def get(self, id: Any) -> Optional[ModelType]:
        """
        Get a record by primary key.

        Args:
            id: Primary key value

        Returns:
            Model instance or None if not found
        """
        return self.session.get(self.model, id)

    def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Field values for the new record

        Returns:
            Created model instance (flushed, so defaults and ids are set)
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        self.session.flush()
        return instance

    def update(self, id: Any, **kwargs: Any) -> Optional[ModelType]:
        """
        Update a record by primary key.

        Args:
            id: Primary key value
            **kwargs: Fields to update

        Returns:
            Updated model instance or None if not found
        """
        instance = self.get(id)
        if instance is None:
            return None
        for key, value in kwargs.items():
            setattr(instance, key, value)
        self.session.flush()
        return instance

    def delete(self, id: Any) -> bool:
        """
        Delete a record by primary key.

        Returns:
            True if deleted, False if not found
        """
        instance = self.get(id)
        if instance is None:
            return False
        self.session.delete(instance)
        self.session.flush()
        return True

    def count(self) -> int:
        """Count all records."""
        return self.session.query(self.model).count()
