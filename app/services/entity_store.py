"""
Entity store - thin repository over a SQLAlchemy session.

Services receive a store at construction; the store is the only place that
talks to the session, commits, and translates database failures into
application errors.
"""
import logging
import math
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import ConflictError, StoreError

logger = logging.getLogger(__name__)


class Page(NamedTuple):
    """One page of a filtered listing."""
    results: List[Any]
    page: int
    limit: int
    total_results: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_results / self.limit) if self.limit else 0


def is_unique_violation(error: IntegrityError) -> bool:
    """Recognize unique-constraint violations across PostgreSQL and SQLite."""
    orig = getattr(error, 'orig', None)
    if getattr(orig, 'pgcode', None) == '23505':
        return True
    text = str(orig or error).lower()
    return 'unique' in text or 'duplicate key' in text


class EntityStore:
    """Create/read/update/delete/paginate typed records through one session."""

    def __init__(self, session: Session, log: Optional[logging.Logger] = None):
        self.session = session
        self.log = log or logger

    # -----------------------------------------------------
    # Writes
    # -----------------------------------------------------

    def create(self, instance, conflict_message: str = 'Resource already exists'):
        """Insert one record and commit. Unique violations become ConflictError."""
        entity = type(instance).__name__
        try:
            self.session.add(instance)
            self.session.commit()
            return instance
        except IntegrityError as e:
            self.session.rollback()
            if is_unique_violation(e):
                self.log.info(f"[STORE] create {entity} rejected by unique constraint")
                raise ConflictError(conflict_message)
            self._fail('create', entity, None, e)
        except SQLAlchemyError as e:
            self.session.rollback()
            self._fail('create', entity, None, e)

    def update(self, model, entity_id, values: Dict[str, Any],
               conflict_message: str = 'Resource already exists') -> int:
        """Issue one UPDATE for ``entity_id`` and return rows affected."""
        stmt = (
            update(model)
            .where(model.id == entity_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self._execute_write('update', model, entity_id, stmt, conflict_message)

    def increment(self, model, entity_id, column, amount: int = 1, conditions: Iterable = ()) -> int:
        """
        Atomically add ``amount`` to ``column`` in a single statement.

        Extra ``conditions`` are appended to the WHERE clause so callers can
        make the increment conditional on the row's current state.
        """
        stmt = (
            update(model)
            .where(model.id == entity_id, *conditions)
            .values({column: column + amount})
            .execution_options(synchronize_session=False)
        )
        return self._execute_write('increment', model, entity_id, stmt)

    def delete(self, model, entity_id) -> int:
        stmt = delete(model).where(model.id == entity_id).execution_options(synchronize_session=False)
        return self._execute_write('delete', model, entity_id, stmt)

    def delete_where(self, model, *criteria) -> int:
        stmt = delete(model).where(*criteria).execution_options(synchronize_session=False)
        return self._execute_write('delete', model, None, stmt)

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------

    def get(self, model, entity_id, options: Iterable = ()):
        """Fetch by primary key or return None."""
        try:
            stmt = select(model).where(model.id == entity_id)
            for option in options:
                stmt = stmt.options(option)
            return self.session.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            self.session.rollback()
            self._fail('get', model.__name__, entity_id, e)

    def get_by(self, model, options: Iterable = (), **criteria):
        """Fetch the first record matching equality criteria."""
        return self.first(self.query(model, options).filter_by(**criteria), model.__name__)

    def query(self, model, options: Iterable = ()):
        query = self.session.query(model)
        for option in options:
            query = query.options(option)
        return query

    def first(self, query, entity: str = 'record'):
        try:
            return query.first()
        except SQLAlchemyError as e:
            self.session.rollback()
            self._fail('get', entity, None, e)

    def all(self, query, entity: str = 'record') -> List[Any]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.session.rollback()
            self._fail('list', entity, None, e)

    def paginate(self, query, page: int, limit: int, entity: str = 'record') -> Page:
        """Count the filtered query, then fetch one page of it."""
        try:
            total = query.order_by(None).count()
            results = query.offset((page - 1) * limit).limit(limit).all()
        except SQLAlchemyError as e:
            self.session.rollback()
            self._fail('list', entity, None, e)
        return Page(results=results, page=page, limit=limit, total_results=total)

    # -----------------------------------------------------
    # PRIVATE HELPERS
    # -----------------------------------------------------

    def _execute_write(self, operation: str, model, entity_id, stmt,
                       conflict_message: str = 'Resource already exists') -> int:
        try:
            result = self.session.execute(stmt)
            self.session.commit()
            return result.rowcount
        except IntegrityError as e:
            self.session.rollback()
            if is_unique_violation(e):
                self.log.info(f"[STORE] {operation} {model.__name__} {entity_id} rejected by unique constraint")
                raise ConflictError(conflict_message)
            self._fail(operation, model.__name__, entity_id, e)
        except SQLAlchemyError as e:
            self.session.rollback()
            self._fail(operation, model.__name__, entity_id, e)

    def _fail(self, operation: str, entity: str, entity_id, error: Exception):
        self.log.exception(f"[STORE] {operation} {entity} {entity_id or ''} failed: {error}")
        raise StoreError() from error
