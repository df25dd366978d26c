"""Required-table check for the QDash schema.

Compares the live database against the ORM metadata: which collections
exist, which are missing, and which existing tables lack columns (typically
``updated_at`` on databases created before it was added).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qdash.db.models import COLLECTIONS
from qdash.db.store import classify_db_error
from qdash.errors import PersistenceError

logger = logging.getLogger(__name__)

REQUIRED_TABLES = tuple(COLLECTIONS)


@dataclass
class SchemaReport:
    """Result of a schema check."""

    existing_tables: list[str] = field(default_factory=list)
    missing_tables: list[str] = field(default_factory=list)
    missing_columns: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.missing_tables and not self.missing_columns

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "existing_tables": self.existing_tables,
            "missing_tables": self.missing_tables,
            "missing_columns": self.missing_columns,
        }


def _inspect_schema(sync_conn) -> dict[str, set[str]]:
    inspector = inspect(sync_conn)
    present = set(inspector.get_table_names())
    return {
        table: {column["name"] for column in inspector.get_columns(table)}
        for table in REQUIRED_TABLES
        if table in present
    }


async def check_schema(session: AsyncSession) -> SchemaReport:
    """Check that every required table and column exists.

    Raises:
        PersistenceError: If the database cannot be reached or inspected
    """
    try:
        connection = await session.connection()
        live = await connection.run_sync(_inspect_schema)
    except SQLAlchemyError as e:
        kind = classify_db_error(e)
        raise PersistenceError(kind, str(getattr(e, "orig", None) or e), "check schema") from e

    report = SchemaReport()
    for table in REQUIRED_TABLES:
        if table not in live:
            report.missing_tables.append(table)
            continue

        report.existing_tables.append(table)
        expected = {column.name for column in COLLECTIONS[table].__table__.columns}
        missing = sorted(expected - live[table])
        if missing:
            report.missing_columns[table] = missing

    if report.ok:
        logger.info(f"✓ Schema OK ({len(report.existing_tables)} tables)")
    else:
        logger.warning(
            f"⚠ Schema incomplete: missing tables {report.missing_tables}, "
            f"missing columns {report.missing_columns}"
        )
    return report
