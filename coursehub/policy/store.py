"""
Policy-checked data store.

Every read and write issued by the services goes through a ``PolicyStore``
bound to one actor. Writes are flushed inside the transaction, re-checked
against the rule table on the resulting row and only then committed, so a
row the actor could not legally produce never becomes visible.
"""
import logging
from typing import Any, FrozenSet, List, Optional, Type, TypeVar
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from coursehub.core.errors import AuthorizationDenied, DuplicateRecord, PersistenceFailure
from coursehub.models.orm import Enrollment
from coursehub.policy.actors import Actor, Student
from coursehub.policy.rules import Operation, can_access

logger = logging.getLogger(__name__)

T = TypeVar("T")

class PolicyStore:
    def __init__(self, db: Session, actor: Actor):
        self.db = db
        self.actor = actor

    # ---- facts ----------------------------------------------------------

    def enrolled_course_ids(self) -> FrozenSet[str]:
        if not isinstance(self.actor, Student):
            return frozenset()
        rows = self.db.scalars(select(Enrollment.course_id).where(Enrollment.user_id == self.actor.id))
        return frozenset(rows)

    def allows(self, operation: Operation, row: Any, enrolled: Optional[FrozenSet[str]] = None) -> bool:
        if enrolled is None:
            enrolled = self.enrolled_course_ids()
        return can_access(self.actor, operation, row, enrolled)

    def authorize(self, operation: Operation, row: Any, enrolled: Optional[FrozenSet[str]] = None) -> None:
        if not self.allows(operation, row, enrolled):
            logger.info(f"Denied {operation.value} on {type(row).__name__} for {self.actor!r}")
            raise AuthorizationDenied.not_found(type(row).__name__)

    # ---- reads ----------------------------------------------------------

    def get(self, model: Type[T], row_id: Any) -> T:
        """Fetch one visible row; a missing and a hidden row look the same."""
        try:
            row = self.db.get(model, row_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Read of {model.__name__} failed: {e}") from e
        if row is None or not self.allows(Operation.READ, row):
            raise AuthorizationDenied.not_found(model.__name__)
        return row

    def select(self, stmt) -> List[Any]:
        """Run a select statement and keep only the rows the actor may read."""
        try:
            rows = self.db.scalars(stmt).all()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Query failed: {e}") from e
        enrolled = self.enrolled_course_ids()
        return [r for r in rows if self.allows(Operation.READ, r, enrolled)]

    def first(self, stmt) -> Optional[Any]:
        rows = self.select(stmt)
        return rows[0] if rows else None

    def release(self) -> None:
        """End the open read transaction so the connection returns to the pool."""
        if not self.db.in_transaction():
            return
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(f"Releasing the transaction failed: {e}") from e

    # ---- writes ---------------------------------------------------------

    def insert(self, row: T, *extra: Any) -> T:
        """Insert ``row`` (and ``extra`` rows) atomically, checking each one."""
        rows = (row,) + extra
        enrolled = self.enrolled_course_ids()
        try:
            self.db.add_all(rows)
            self.db.flush()
            for r in rows:
                self.authorize(Operation.INSERT, r, enrolled)
            self.db.commit()
        except AuthorizationDenied:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateRecord(f"Insert of {type(row).__name__} violates a constraint") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Insert of {type(row).__name__} failed: {e}")
            raise PersistenceFailure(f"Insert of {type(row).__name__} failed") from e
        return row

    def update(self, row: T, **values: Any) -> T:
        enrolled = self.enrolled_course_ids()
        self.authorize(Operation.UPDATE, row, enrolled)
        try:
            for key, value in values.items():
                setattr(row, key, value)
            self.db.flush()
            self.authorize(Operation.UPDATE, row, enrolled)
            self.db.commit()
        except AuthorizationDenied:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateRecord(f"Update of {type(row).__name__} violates a constraint") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Update of {type(row).__name__} failed: {e}")
            raise PersistenceFailure(f"Update of {type(row).__name__} failed") from e
        return row

    def delete(self, row: Any) -> None:
        self.authorize(Operation.DELETE, row)
        try:
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Delete of {type(row).__name__} failed: {e}")
            raise PersistenceFailure(f"Delete of {type(row).__name__} failed") from e
