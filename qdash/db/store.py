"""Keyed record store over named collections.

Thin persistence collaborator used by ingestion and metric saves. It offers
four verbs (select / insert / delete / upsert) with filters expressed as
field equality, membership, or an inclusive ``Between`` range. Driver errors
are classified into ``PersistenceErrorKind`` here, and nowhere else.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import select as sa_select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qdash.db.models import COLLECTIONS, Base
from qdash.errors import PersistenceError, PersistenceErrorKind

logger = logging.getLogger(__name__)

# SQLSTATE codes (PostgreSQL) mapped to error kinds
SQLSTATE_KINDS = {
    "28P01": PersistenceErrorKind.INVALID_CREDENTIALS,  # invalid_password
    "28000": PersistenceErrorKind.INVALID_CREDENTIALS,  # invalid_authorization_specification
    "42P01": PersistenceErrorKind.MISSING_RELATION,  # undefined_table
    "3F000": PersistenceErrorKind.MISSING_RELATION,  # invalid_schema_name
    "42703": PersistenceErrorKind.MISSING_COLUMN,  # undefined_column
}

# Fallback for drivers without SQLSTATE (SQLite)
MESSAGE_KINDS = (
    ("password authentication failed", PersistenceErrorKind.INVALID_CREDENTIALS),
    ("no such table", PersistenceErrorKind.MISSING_RELATION),
    ("does not exist", PersistenceErrorKind.MISSING_RELATION),
    ("no such column", PersistenceErrorKind.MISSING_COLUMN),
    ("has no column named", PersistenceErrorKind.MISSING_COLUMN),
)


@dataclass(frozen=True)
class Between:
    """Inclusive range filter: ``start <= field <= end``."""

    start: Any
    end: Any


def classify_db_error(exc: BaseException) -> PersistenceErrorKind:
    """Map a driver/SQLAlchemy exception to a persistence error kind."""
    orig = getattr(exc, "orig", None) or exc
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)

    if sqlstate in SQLSTATE_KINDS:
        return SQLSTATE_KINDS[sqlstate]

    message = str(orig).lower()
    for needle, kind in MESSAGE_KINDS:
        if needle in message:
            # "column ... does not exist" is a column problem, not a relation one
            if kind is PersistenceErrorKind.MISSING_RELATION and "column" in message:
                return PersistenceErrorKind.MISSING_COLUMN
            return kind

    return PersistenceErrorKind.UNKNOWN


class RecordStore:
    """Select/insert/delete/upsert over named record collections."""

    def __init__(self, session: AsyncSession):
        """Initialize store with database session.

        Args:
            session: Active async SQLAlchemy session
        """
        self.session = session

    def model_for(self, collection: str) -> type[Base]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    @asynccontextmanager
    async def _operation(self, operation: str, collection: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            kind = classify_db_error(e)
            orig = getattr(e, "orig", None) or e
            logger.error(f"{operation} on {collection} failed ({kind.value}): {orig}")
            raise PersistenceError(kind, str(orig), f"{operation} {collection}") from e

    def _where(self, model: type[Base], filters: Mapping[str, Any] | None) -> list:
        clauses = []
        for field_name, value in (filters or {}).items():
            column = getattr(model, field_name, None)
            if column is None:
                raise ValueError(f"{model.__tablename__} has no field '{field_name}'")

            if isinstance(value, Between):
                clauses.append(column.between(value.start, value.end))
            elif value is None:
                clauses.append(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)
        return clauses

    def _order(self, model: type[Base], order_by: str | Sequence[str] | None) -> list:
        if order_by is None:
            return []
        if isinstance(order_by, str):
            order_by = [order_by]

        ordering = []
        for key in order_by:
            descending = key.startswith("-")
            column = getattr(model, key.lstrip("-"))
            ordering.append(column.desc() if descending else column.asc())
        return ordering

    async def select(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | Sequence[str] | None = None,
    ) -> list[Base]:
        """Fetch records matching all filters.

        Args:
            collection: Collection (table) name
            filters: Field → value / list / Between
            order_by: Field name(s); prefix with "-" for descending

        Returns:
            Matching model instances
        """
        model = self.model_for(collection)
        stmt = sa_select(model).where(*self._where(model, filters))
        stmt = stmt.order_by(*self._order(model, order_by))

        async with self._operation("select", collection):
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def insert(self, collection: str, records: Sequence[Mapping[str, Any]]) -> list[Base]:
        """Insert records and return them with assigned identifiers."""
        model = self.model_for(collection)
        instances = [model(**dict(record)) for record in records]

        async with self._operation("insert", collection):
            self.session.add_all(instances)
            await self.session.flush()

        return instances

    async def delete(self, collection: str, filters: Mapping[str, Any]) -> int:
        """Delete records matching all filters.

        Raises:
            ValueError: If no filters are given (refuses to clear a collection)

        Returns:
            Number of deleted rows
        """
        if not filters:
            raise ValueError(f"Refusing to delete from {collection} without filters")

        model = self.model_for(collection)
        stmt = sa_delete(model).where(*self._where(model, filters))

        async with self._operation("delete", collection):
            result = await self.session.execute(stmt)
            await self.session.flush()

        return result.rowcount or 0

    async def upsert(self, collection: str, records: Sequence[Mapping[str, Any]]) -> list[Base]:
        """Update records that carry an existing ``id``; insert the rest.

        Returns:
            Affected model instances, in input order
        """
        model = self.model_for(collection)
        affected = []

        async with self._operation("upsert", collection):
            for record in records:
                values = dict(record)
                record_id = values.get("id")
                existing = await self.session.get(model, record_id) if record_id else None

                if existing is None:
                    instance = model(**values)
                    self.session.add(instance)
                else:
                    for key, value in values.items():
                        if key != "id":
                            setattr(existing, key, value)
                    instance = existing

                affected.append(instance)

            await self.session.flush()

        return affected

    async def commit(self) -> None:
        async with self._operation("commit", "session"):
            await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
