"""Type definitions for upload operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID


@dataclass
class UploadResult:
    """Result of one spreadsheet ingestion."""

    upload_id: UUID
    domain: str
    filename: str
    records_inserted: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    target_month: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def record_count(self) -> int:
        """Records written by this upload (inserted plus updated)."""
        return self.records_inserted + self.records_updated

    def to_dict(self) -> dict:
        return {
            "upload_id": str(self.upload_id),
            "domain": self.domain,
            "filename": self.filename,
            "record_count": self.record_count,
            "records_inserted": self.records_inserted,
            "records_updated": self.records_updated,
            "records_deleted": self.records_deleted,
            "target_month": self.target_month,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class UploadSummary:
    """One row of upload history."""

    id: UUID
    domain: str
    filename: str
    record_count: int
    upload_date: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "domain": self.domain,
            "filename": self.filename,
            "record_count": self.record_count,
            "upload_date": self.upload_date.isoformat() if self.upload_date else None,
        }
