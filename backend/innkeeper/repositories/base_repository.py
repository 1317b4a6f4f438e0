# backend/innkeeper/repositories/base_repository.py
"""
Base Repository Pattern for the Innkeeper backend.

Repositories flush but never commit; the owning service decides when a
unit of work is complete. Every ``SQLAlchemyError`` leaves here as a
``RepositoryException``.

Status columns that several actors race on (bookings, stays, key cards)
move through ``compare_and_set_status``: a conditional UPDATE on the
expected status whose row count says who won.
"""

import logging
from typing import Any, Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")


class BaseRepository(Generic[T]):
    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        """Dialect of the bound engine; row locks are only taken on PostgreSQL."""
        return self.db.get_bind().dialect.name

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if load_relationships:
                query = self._apply_eager_loading(query)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def find_one_by(self, **criteria: Any) -> Optional[T]:
        try:
            return self.db.query(self.model).filter_by(**criteria).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding {self.model.__name__} by {criteria}: {str(e)}")
            raise RepositoryException(f"Failed to find {self.model.__name__}: {str(e)}")

    def create(self, **values: Any) -> T:
        """Add and flush a new row; the caller's transaction commits it."""
        entity = self.model(**values)
        try:
            self.db.add(entity)
            self.db.flush()
        except IntegrityError as e:
            self.logger.error(f"Integrity error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Integrity constraint violated: {str(e)}")
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")
        return entity

    def flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error flushing {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to save {self.model.__name__}: {str(e)}")

    def compare_and_set_status(
        self, id: str, expected: Any, new_status: Any, **values: Any
    ) -> bool:
        """
        Move a row from ``expected`` (one status or a collection) to ``new_status``.

        Returns False when the row is no longer in ``expected``; callers treat
        that as already handled by whoever got there first.
        """
        if isinstance(expected, (set, frozenset, list, tuple)):
            expected_values: Iterable[Any] = list(expected)
        else:
            expected_values = [expected]
        try:
            self.db.flush()
            result = self.db.execute(
                update(self.model)
                .where(self.model.id == id, self.model.status.in_(expected_values))
                .values(status=new_status, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return False
            entity = self.db.get(self.model, id)
            if entity is not None:
                self.db.refresh(entity)
            return True
        except SQLAlchemyError as e:
            self.logger.error(f"Conditional status update failed for {id}: {str(e)}")
            raise RepositoryException(f"Failed to update {self.model.__name__} status: {str(e)}")

    def _apply_eager_loading(self, query: Query) -> Query:
        """Override in subclasses to specify which relationships to load."""
        return query

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Query execution error: {str(e)}")
            raise RepositoryException(f"Query failed: {str(e)}")
