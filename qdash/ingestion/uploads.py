"""Upload orchestration: decode → normalize → replace → insert.

Period-scoped domains delete every record whose ``data_date`` falls inside
the target month before the new batch is inserted. Parts price has no
period; it reconciles by part name instead. All writes of one upload share
the caller's session transaction and are committed together, so a failed
insert also rolls back the delete that preceded it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from datetime import date
from typing import Any
from uuid import UUID, uuid4

from qdash.config import AppConfig, get_config
from qdash.db.store import Between, RecordStore
from qdash.errors import InvalidInputError, PersistenceError
from qdash.ingestion.domains import DomainSpec, get_domain
from qdash.ingestion.normalizers import normalize_rows, validate_target_month
from qdash.ingestion.spreadsheet import decode_upload
from qdash.ingestion.types import UploadResult, UploadSummary

logger = logging.getLogger(__name__)

BATCH_COLLECTION = "upload_batches"

# One in-process lock per domain; uploads to the same domain never interleave
_domain_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)


def month_range(target_month: str) -> Between:
    """Inclusive ``data_date`` range for a ``YYYY-MM`` month.

    The upper bound is always day 31; dates are ISO text, so the lexical
    comparison covers every calendar month.
    """
    target_month = validate_target_month(target_month)
    if target_month is None:
        raise InvalidInputError("target_month is required")
    return Between(f"{target_month}-01", f"{target_month}-31")


def batch_filename(filename: str, target_month: str | None) -> str:
    """Filename recorded on the batch, prefixed with ``[YYYY-MM]`` when scoped."""
    return f"[{target_month}] {filename}" if target_month else filename


async def _create_batch(
    store: RecordStore, spec: DomainSpec, upload_id: UUID, filename: str, record_count: int
) -> None:
    await store.insert(
        BATCH_COLLECTION,
        [
            {
                "id": upload_id,
                "domain": spec.name,
                "filename": filename,
                "record_count": record_count,
            }
        ],
    )


async def apply_upload(
    store: RecordStore,
    spec: DomainSpec,
    records: list[dict[str, Any]],
    upload_id: UUID,
    filename: str,
    target_month: str | None = None,
) -> UploadResult:
    """Replace the target month's records with a new batch.

    Args:
        store: Record store bound to the upload's session
        spec: Period-scoped upload domain
        records: Normalized records, already carrying ``upload_id``
        upload_id: Identifier of the batch to create
        filename: Original upload filename
        target_month: Optional ``YYYY-MM``; without it nothing is deleted

    Returns:
        UploadResult with inserted and deleted counts (not yet committed)
    """
    deleted = 0
    if target_month:
        deleted = await store.delete(spec.collection, {"data_date": month_range(target_month)})
        logger.info(f"Deleted {deleted} {spec.name} records for {target_month}")

    await _create_batch(store, spec, upload_id, batch_filename(filename, target_month), len(records))
    await store.insert(spec.collection, records)

    return UploadResult(
        upload_id=upload_id,
        domain=spec.name,
        filename=filename,
        records_inserted=len(records),
        records_deleted=deleted,
        target_month=target_month,
    )


async def reconcile_parts_price(
    store: RecordStore,
    spec: DomainSpec,
    records: list[dict[str, Any]],
    upload_id: UUID,
    filename: str,
    target_month: str | None = None,
) -> UploadResult:
    """Update parts with a matching ``part_name`` in place; insert the rest.

    Updated rows are re-pointed at the new batch. When a part name repeats
    within one upload, the last row wins.
    """
    latest: dict[str, dict[str, Any]] = {}
    for record in records:
        latest[record["part_name"]] = record

    existing = await store.select(spec.collection, {"part_name": list(latest)}) if latest else []
    existing_ids = {row.part_name: row.id for row in existing}

    updates = []
    inserts = []
    for part_name, record in latest.items():
        if part_name in existing_ids:
            updates.append({**record, "id": existing_ids[part_name]})
        else:
            inserts.append(record)

    await _create_batch(store, spec, upload_id, batch_filename(filename, target_month), len(latest))
    if updates:
        await store.upsert(spec.collection, updates)
    if inserts:
        await store.insert(spec.collection, inserts)

    logger.info(f"Parts price reconcile: {len(updates)} updated, {len(inserts)} inserted")

    return UploadResult(
        upload_id=upload_id,
        domain=spec.name,
        filename=filename,
        records_inserted=len(inserts),
        records_updated=len(updates),
        target_month=target_month,
    )


async def ingest_upload(
    store: RecordStore,
    domain: str,
    content: bytes,
    filename: str,
    target_month: str | None = None,
    today: date | None = None,
    config: AppConfig | None = None,
) -> UploadResult:
    """Ingest one uploaded spreadsheet into ``domain``.

    Args:
        store: Record store bound to an open session
        domain: Upload domain name (see ``qdash.ingestion.domains.DOMAINS``)
        content: Raw file bytes
        filename: Original filename
        target_month: Optional ``YYYY-MM`` period to replace
        today: Date fallback for rows without a date (defaults to today)
        config: Application configuration (defaults to ``get_config()``)

    Returns:
        UploadResult for the committed batch

    Raises:
        InvalidInputError: Unknown domain or malformed target month
        UnsupportedFileError: File format, size or row limit
        EmptyFileError: No data rows; raised before any persistence call
        PersistenceError: A store operation failed; nothing was committed
    """
    spec = get_domain(domain)
    target_month = validate_target_month(target_month)
    config = config or get_config()
    started = time.perf_counter()

    sheet = await decode_upload(
        content,
        filename,
        max_rows=config.ingestion.max_upload_rows,
        max_upload_mb=config.ingestion.max_upload_mb,
    )

    upload_id = uuid4()
    records = normalize_rows(
        spec, sheet, upload_id, target_month=target_month, today=today, config=config.ingestion
    )

    async with _domain_locks[spec.name]:
        try:
            if spec.period_scoped:
                result = await apply_upload(store, spec, records, upload_id, filename, target_month)
            else:
                result = await reconcile_parts_price(
                    store, spec, records, upload_id, filename, target_month
                )
            await store.commit()
        except PersistenceError as e:
            await store.rollback()
            logger.error(
                f"Upload of {filename} to {spec.name} failed ({e.kind.value}): {e.message}"
            )
            raise

    result.duration_seconds = time.perf_counter() - started
    logger.info(
        f"Upload {upload_id} committed: {result.record_count} {spec.name} records "
        f"from {filename} ({result.records_deleted} replaced)"
    )
    return result


async def list_uploads(store: RecordStore, domain: str) -> list[UploadSummary]:
    """Upload history for a domain, newest first."""
    spec = get_domain(domain)
    batches = await store.select(BATCH_COLLECTION, {"domain": spec.name}, order_by="-upload_date")
    return [
        UploadSummary(
            id=batch.id,
            domain=batch.domain,
            filename=batch.filename,
            record_count=batch.record_count,
            upload_date=batch.upload_date,
        )
        for batch in batches
    ]


async def delete_upload(store: RecordStore, domain: str, upload_id: UUID) -> int | None:
    """Delete an upload batch and every record it owns.

    Child records are deleted explicitly first, so this does not depend on
    the database enforcing the foreign-key cascade.

    Returns:
        Number of child records deleted, or None when no batch with that id
        belongs to ``domain``
    """
    spec = get_domain(domain)
    batches = await store.select(BATCH_COLLECTION, {"id": upload_id, "domain": spec.name})
    if not batches:
        logger.warning(f"Upload {upload_id} not found in {spec.name}")
        return None

    try:
        deleted = await store.delete(spec.collection, {"upload_id": upload_id})
        await store.delete(BATCH_COLLECTION, {"id": upload_id})
        await store.commit()
    except PersistenceError:
        await store.rollback()
        raise

    logger.info(f"Deleted upload {upload_id} and {deleted} {spec.name} records")
    return deleted
