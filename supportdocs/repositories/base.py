"""Base repository with shared get-by-ID and status transition patterns.

Subclasses specify model_class, id_column, and not_found_error; the base
provides the common lookups plus ``try_set_status``, the single atomic
compare-and-set used for every status column the pipeline owns.
"""

from typing import Any, Generic, Iterable, Optional, Type, TypeVar

from sqlalchemy import or_, update as sa_update
from sqlalchemy.orm import Query, Session

from ..database import Base
from ..exceptions import EntityNotFoundError

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Shared repository logic for SQLAlchemy models.

    Class variables to set in subclasses:
        model_class:     The SQLAlchemy model (e.g., Article)
        id_column:       Name of the primary-key column (default "id")
        not_found_error: Exception class to raise from get_by_id
    """

    model_class: Type[ModelT]
    id_column: str = "id"
    not_found_error: Type[EntityNotFoundError]

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self) -> Query:
        return self.db.query(self.model_class)

    def get_by_id(self, entity_id: str) -> ModelT:
        """Get entity by primary key. Raises not_found_error if missing."""
        col = getattr(self.model_class, self.id_column)
        entity = self._base_query().filter(col == entity_id).first()
        if not entity:
            raise self.not_found_error(entity_id)
        return entity

    def get_by_id_optional(self, entity_id: str) -> Optional[ModelT]:
        """Get entity by primary key, or None if not found."""
        col = getattr(self.model_class, self.id_column)
        return self._base_query().filter(col == entity_id).first()

    def exists(self, entity_id: str) -> bool:
        col = getattr(self.model_class, self.id_column)
        return self.db.query(col).filter(col == entity_id).first() is not None

    def try_set_status(
        self,
        entity_id: str,
        status_column: str,
        expected: Iterable[Optional[str]],
        new_status: str,
        commit: bool = True,
        **values: Any,
    ) -> bool:
        """Atomically move ``status_column`` to ``new_status`` if it is in ``expected``.

        ``None`` in ``expected`` matches a NULL column. Extra keyword values are
        written in the same statement. By default commits immediately so the
        transition is visible to other workers before the caller does anything
        slow; with ``commit=False`` the caller decides after seeing the result.

        Returns:
            True when this caller performed the transition, False when the
            row is missing or its status was not one of ``expected``.
        """
        expected = list(expected)
        status_col = getattr(self.model_class, status_column)
        id_col = getattr(self.model_class, self.id_column)

        known = [s for s in expected if s is not None]
        conditions = []
        if known:
            conditions.append(status_col.in_(known))
        if len(known) != len(expected):
            conditions.append(status_col.is_(None))

        stmt = (
            sa_update(self.model_class)
            .where(id_col == entity_id, or_(*conditions))
            .values({status_column: new_status, **values})
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if commit:
            self.db.commit()
        rowcount: int = getattr(result, "rowcount", 0) or 0
        return rowcount > 0
