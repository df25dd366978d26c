"""Spreadsheet ingestion for QDash upload domains."""

from qdash.ingestion.domains import DOMAINS, DomainKind, DomainSpec, get_domain
from qdash.ingestion.types import UploadResult, UploadSummary
from qdash.ingestion.uploads import delete_upload, ingest_upload, list_uploads

__all__ = [
    "DOMAINS",
    "DomainKind",
    "DomainSpec",
    "UploadResult",
    "UploadSummary",
    "delete_upload",
    "get_domain",
    "ingest_upload",
    "list_uploads",
]
