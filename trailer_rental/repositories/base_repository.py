# trailer_rental/repositories/base_repository.py
"""
Base Repository Pattern for the trailer rental platform.

Provides the foundation for all repository classes with:
- Common lookup/create operations
- Type safety with generics
- Transaction support (managed by services)
- Compare-and-swap updates for optimistic concurrency

Repositories never commit; the service layer owns transaction boundaries.
"""

import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def get_by_id(self, id: str, *, for_update: bool = False) -> Optional[T]:
        """Retrieve an entity by its primary key, optionally row-locking it."""
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if for_update:
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()
            return entity
        except IntegrityError as exc:
            self.logger.error(
                "Integrity error creating %s: %s", self.model.__name__, exc, exc_info=True
            )
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")

    def flush(self) -> None:
        """Flush pending ORM changes."""
        self.db.flush()

    def refresh(self, instance: T) -> None:
        """Reload an instance from the database."""
        self.db.refresh(instance)

    def find_by(self, **kwargs: Any) -> List[T]:
        """Find entities by exact-match criteria."""
        try:
            return self.db.query(self.model).filter_by(**kwargs).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding by criteria: {str(e)}")
            raise RepositoryException(f"Failed to find records: {str(e)}")

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        try:
            return self.db.query(self.model).filter_by(**kwargs).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding one by criteria: {str(e)}")
            raise RepositoryException(f"Failed to find record: {str(e)}")

    # Protected helpers for subclasses

    def _conditional_update(self, *criteria: Any, **values: Any) -> int:
        """
        Run ``UPDATE model SET values WHERE criteria`` and return the affected row count.

        Pending ORM changes are flushed first so the statement sees them; loaded
        instances are expired afterwards so they re-read the committed values.
        """
        try:
            self.db.flush()
            stmt = (
                update(self.model)
                .where(*criteria)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            self.db.expire_all()
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Conditional update on {self.model.__name__} failed: {str(e)}")
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}")

    def _build_query(self) -> Query:
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        """Execute query with error handling."""
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Query execution error: {str(e)}")
            raise RepositoryException(f"Query failed: {str(e)}")
