"""PPM metric reconciliation for customer, supplier and outgoing quality.

Metric rows are keyed by ``(dimension, year, month)``; outgoing metrics have
no dimension. Saves look up the existing row for each key and carry its id
forward so the write updates in place, and ``actual`` is always recomputed
from ``defects`` / ``inspection_qty`` right before writing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field

from qdash.db.store import RecordStore
from qdash.errors import PersistenceError

logger = logging.getLogger(__name__)


class MetricKind(str, Enum):
    """PPM metric family."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    OUTGOING = "outgoing"

    @property
    def collection(self) -> str:
        return f"{self.value}_metrics"

    @property
    def dimension_field(self) -> str | None:
        """Name of the dimension column, None for outgoing metrics."""
        return {
            MetricKind.CUSTOMER: "customer",
            MetricKind.SUPPLIER: "supplier",
            MetricKind.OUTGOING: None,
        }[self]


class MetricEntry(BaseModel):
    """One month of PPM input.

    ``actual`` may be supplied but is never trusted; it is recomputed on save.
    """

    customer: Optional[str] = None
    supplier: Optional[str] = None
    year: int
    month: int = Field(ge=1, le=12)
    target: float = 0
    inspection_qty: int = Field(default=0, ge=0)
    defects: int = Field(default=0, ge=0)
    incoming_qty: int = Field(default=0, ge=0)
    actual: Optional[int] = None

    def dimension(self, kind: MetricKind) -> str | None:
        field_name = kind.dimension_field
        return getattr(self, field_name) if field_name else None


def compute_ppm(defects: float, inspection_qty: float) -> int:
    """Parts per million, rounded half up; 0 when nothing was inspected."""
    if inspection_qty <= 0:
        return 0
    return int(math.floor(defects * 1_000_000 / inspection_qty + 0.5))


def _natural_key(kind: MetricKind, year: int, month: int, dimension: str | None) -> dict[str, Any]:
    key: dict[str, Any] = {"year": year, "month": month}
    if kind.dimension_field:
        if not dimension:
            raise ValueError(f"{kind.value} metrics require a {kind.dimension_field}")
        key[kind.dimension_field] = dimension
    return key


def _record(kind: MetricKind, key: dict[str, Any], entry: MetricEntry) -> dict[str, Any]:
    record = {
        **key,
        "target": entry.target,
        "inspection_qty": entry.inspection_qty,
        "defects": entry.defects,
        "actual": compute_ppm(entry.defects, entry.inspection_qty),
    }
    if kind is MetricKind.SUPPLIER:
        record["incoming_qty"] = entry.incoming_qty
    return record


async def save_metrics(
    store: RecordStore, kind: MetricKind, entries: Sequence[MetricEntry]
) -> bool:
    """Upsert metric entries by natural key in one batch.

    Args:
        store: Record store bound to an open session
        kind: Metric family
        entries: Entries to write; a repeated key within the batch keeps the
            last entry

    Returns:
        True when the whole batch was committed, False when anything failed
        (nothing is written in that case)
    """
    batch: dict[tuple, tuple[dict[str, Any], dict[str, Any]]] = {}
    for entry in entries:
        try:
            key = _natural_key(kind, entry.year, entry.month, entry.dimension(kind))
        except ValueError as e:
            logger.error(f"Rejected {kind.value} metric entry: {e}")
            return False
        batch[tuple(sorted(key.items()))] = (key, _record(kind, key, entry))

    records = []
    try:
        for key, record in batch.values():
            existing = await store.select(kind.collection, key)
            if existing:
                record["id"] = existing[0].id
            records.append(record)

        await store.upsert(kind.collection, records)
        await store.commit()
    except PersistenceError as e:
        await store.rollback()
        logger.error(f"Saving {len(batch)} {kind.value} metrics failed ({e.kind.value}): {e.message}")
        return False

    logger.info(f"Saved {len(batch)} {kind.value} metrics")
    return True


async def set_annual_target(
    store: RecordStore,
    kind: MetricKind,
    year: int,
    target: float,
    dimension: str | None = None,
) -> bool:
    """Set the same target on all twelve months of a year.

    Existing inspection quantities and defect counts are carried forward, so
    months that already have actuals keep them. Like ``save_metrics``,
    returns False instead of raising when the database fails.
    """
    filters: dict[str, Any] = {"year": year}
    if kind.dimension_field:
        filters[kind.dimension_field] = dimension

    try:
        rows = await store.select(kind.collection, filters)
    except PersistenceError as e:
        await store.rollback()
        logger.error(f"Loading {year} {kind.value} metrics failed ({e.kind.value}): {e.message}")
        return False
    existing = {row.month: row for row in rows}

    entries = []
    for month in range(1, 13):
        row = existing.get(month)
        entry: dict[str, Any] = {
            "year": year,
            "month": month,
            "target": target,
            "inspection_qty": row.inspection_qty if row else 0,
            "defects": row.defects if row else 0,
            "incoming_qty": getattr(row, "incoming_qty", 0) if row else 0,
        }
        if kind.dimension_field:
            entry[kind.dimension_field] = dimension
        entries.append(MetricEntry(**entry))

    return await save_metrics(store, kind, entries)


@dataclass
class MonthlyPoint:
    """One month of a PPM chart."""

    month: int
    target: float
    inspection_qty: int = 0
    defects: int = 0
    actual: int | None = None


@dataclass
class YearSummary:
    """Whole-year roll-up of a PPM series."""

    ppm: int
    total_defects: int
    total_inspection: int
    average_target: float

    @property
    def on_target(self) -> bool:
        return self.ppm <= self.average_target


def monthly_series(rows: Sequence[Any], year: int, default_target: float = 10) -> list[MonthlyPoint]:
    """Twelve monthly points for one year.

    ``rows`` should already be filtered to one dimension value. Months
    without a row get ``default_target``; ``actual`` is None for months with
    no inspections so charts can leave a gap.
    """
    by_month = {int(row.month): row for row in rows if int(row.year) == year}

    points = []
    for month in range(1, 13):
        row = by_month.get(month)
        if row is None:
            points.append(MonthlyPoint(month=month, target=default_target))
            continue
        points.append(
            MonthlyPoint(
                month=month,
                target=float(row.target),
                inspection_qty=int(row.inspection_qty),
                defects=int(row.defects),
                actual=int(row.actual) if row.inspection_qty > 0 else None,
            )
        )
    return points


def year_summary(points: Sequence[MonthlyPoint]) -> YearSummary:
    """Cumulative PPM, totals and average target over a monthly series."""
    total_defects = sum(point.defects for point in points)
    total_inspection = sum(point.inspection_qty for point in points)
    average_target = sum(point.target for point in points) / 12
    return YearSummary(
        ppm=compute_ppm(total_defects, total_inspection),
        total_defects=total_defects,
        total_inspection=total_inspection,
        average_target=average_target,
    )
