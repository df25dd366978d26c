"""Error taxonomy for QDash ingestion and persistence.

Persistence failures are classified once, at the store boundary, into a
small set of kinds. Callers branch on ``PersistenceError.kind`` and never on
driver message text.
"""

from __future__ import annotations

from enum import Enum


class EmptyFileError(Exception):
    """Raised when a decoded spreadsheet has no data rows."""

    def __init__(self, filename: str | None = None):
        self.filename = filename
        name = f" '{filename}'" if filename else ""
        super().__init__(f"Uploaded file{name} contains no data rows")


class InvalidInputError(ValueError):
    """Raised for rejected user input: unknown domain, malformed target month."""


class UnsupportedFileError(InvalidInputError):
    """Raised when an upload cannot be decoded (format, size or row limit)."""


class PersistenceErrorKind(str, Enum):
    """Classified persistence failure."""

    INVALID_CREDENTIALS = "invalid_credentials"
    MISSING_RELATION = "missing_relation"
    MISSING_COLUMN = "missing_column"
    UNKNOWN = "unknown"


REMEDIATION = {
    PersistenceErrorKind.INVALID_CREDENTIALS: (
        "Database credentials were rejected. Check DATABASE_URL user and password."
    ),
    PersistenceErrorKind.MISSING_RELATION: (
        "A required table does not exist. Run `qdash init` to provision the schema."
    ),
    PersistenceErrorKind.MISSING_COLUMN: (
        "The table schema is out of date (e.g. missing updated_at). "
        "Re-run `qdash init` or apply the pending migration."
    ),
    PersistenceErrorKind.UNKNOWN: "Database operation failed. See logs for details.",
}


class PersistenceError(Exception):
    """A store operation (select/insert/delete/upsert) failed."""

    def __init__(self, kind: PersistenceErrorKind, message: str, operation: str = ""):
        self.kind = kind
        self.message = message
        self.operation = operation
        super().__init__(f"{operation} failed: {message}" if operation else message)

    @property
    def remediation(self) -> str:
        """User-facing remediation text for this failure kind."""
        return REMEDIATION[self.kind]
