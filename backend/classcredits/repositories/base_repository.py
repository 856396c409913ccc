# backend/classcredits/repositories/base_repository.py
"""
Base Repository Pattern for the ledger and booking engine.

Provides the foundation for all repository classes with:
- Common lookup and create operations
- Type safety with generics
- Transaction support (managed by services)
- Dialect-aware row locking

Repositories never commit; the service layer owns transaction boundaries.
"""

import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from classcredits.database.session_utils import get_dialect_name

from ..core.exceptions import RepositoryException

# Type variable for generic model support
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
        """
        Initialize repository with database session and model.

        Args:
            db: SQLAlchemy session (managed by service layer)
            model: SQLAlchemy model class
        """
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def _lockable(self, stmt: Select[Any], for_update: bool) -> Select[Any]:
        """Apply ``FOR UPDATE`` where the backend supports row locks."""
        if for_update and self.dialect_name == "postgresql":
            return stmt.with_for_update()
        return stmt

    def get_by_id(
        self, id: str, for_update: bool = False, populate_existing: bool = False
    ) -> Optional[T]:
        """
        Retrieve an entity by its primary key.

        ``populate_existing`` overwrites an already loaded instance with the row
        as stored, picking up changes made by bulk UPDATE statements.
        """
        try:
            stmt = self._lockable(select(self.model).where(self.model.id == id), for_update)
            if populate_existing:
                stmt = stmt.execution_options(populate_existing=True)
            return self.db.execute(stmt).scalar_one_or_none()
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
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")

    def flush(self) -> None:
        """Flush pending ORM changes."""
        self.db.flush()

    def exists(self, **kwargs: Any) -> bool:
        """Check if an entity exists with given criteria."""
        try:
            return self.db.query(self.model).filter_by(**kwargs).first() is not None
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking existence: {str(e)}")
            raise RepositoryException(f"Failed to check existence: {str(e)}")

    def count(self, **kwargs: Any) -> int:
        """Count entities matching given criteria."""
        try:
            return self.db.query(self.model).filter_by(**kwargs).count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting records: {str(e)}")
            raise RepositoryException(f"Failed to count records: {str(e)}")

    # Protected helper methods for use by subclasses

    def _execute_list(self, stmt: Select[Any]) -> List[T]:
        """
        Execute a select returning entities, with error handling.

        Loaded instances are refreshed from the row, since status changes are
        written with bulk UPDATE statements that bypass the identity map.
        """
        try:
            stmt = stmt.execution_options(populate_existing=True)
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Query execution error: {str(e)}")
            raise RepositoryException(f"Query failed: {str(e)}")

    def _execute_scalar(self, stmt: Select[Any]) -> Any:
        """Execute scalar query with error handling."""
        try:
            return self.db.execute(stmt).scalar()
        except SQLAlchemyError as e:
            self.logger.error(f"Scalar query error: {str(e)}")
            raise RepositoryException(f"Scalar query failed: {str(e)}")
