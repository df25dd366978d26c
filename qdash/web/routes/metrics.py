"""PPM metric routes (customer, supplier, outgoing).

Routes:
- GET  /metrics/{kind}                - Stored rows, filtered by year / dimension
- POST /metrics/{kind}                - Upsert entries by (dimension, year, month)
- POST /metrics/{kind}/annual-target  - Set one target on all twelve months
- GET  /metrics/{kind}/monthly        - Twelve-month chart series and year summary
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from qdash.config import AppConfig
from qdash.db.store import RecordStore
from qdash.metrics.ppm import (
    MetricEntry,
    MetricKind,
    monthly_series,
    save_metrics,
    set_annual_target,
    year_summary,
)
from qdash.web.dependencies import get_app_config, get_store, resolve_metric_kind
from qdash.web.models import (
    AnnualTargetRequest,
    MonthlySeriesResponse,
    SaveMetricsResponse,
)

router = APIRouter(prefix="/metrics", tags=["metrics"])


def _filters(kind: MetricKind, year: int | None, dimension: str | None) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    if year is not None:
        filters["year"] = year
    if dimension is not None and kind.dimension_field:
        filters[kind.dimension_field] = dimension
    return filters


def _require_dimension(kind: MetricKind, dimension: str | None) -> None:
    if kind.dimension_field and not dimension:
        raise HTTPException(status_code=400, detail=f"{kind.value} metrics require a {kind.dimension_field}")


def _save_response(success: bool, saved: int) -> SaveMetricsResponse | JSONResponse:
    if success:
        return SaveMetricsResponse(success=True, saved=saved, message=f"Saved {saved} entries")
    return JSONResponse(
        status_code=503,
        content={"success": False, "saved": 0, "message": "Saving metrics failed. See logs for details."},
    )


@router.get("/{kind}")
async def list_metrics(
    year: int | None = Query(default=None),
    dimension: str | None = Query(default=None),
    kind: MetricKind = Depends(resolve_metric_kind),
    store: RecordStore = Depends(get_store),
):
    rows = await store.select(kind.collection, _filters(kind, year, dimension), order_by=["year", "month"])
    return [row.to_dict() for row in rows]


@router.post("/{kind}", response_model=SaveMetricsResponse)
async def save_metric_entries(
    entries: list[MetricEntry],
    kind: MetricKind = Depends(resolve_metric_kind),
    store: RecordStore = Depends(get_store),
):
    """Save entries; ``actual`` is recomputed from defects and inspection qty."""
    for entry in entries:
        _require_dimension(kind, entry.dimension(kind))
    success = await save_metrics(store, kind, entries)
    return _save_response(success, len(entries))


@router.post("/{kind}/annual-target", response_model=SaveMetricsResponse)
async def save_annual_target(
    request: AnnualTargetRequest,
    kind: MetricKind = Depends(resolve_metric_kind),
    store: RecordStore = Depends(get_store),
):
    """Apply one target to every month of a year, keeping recorded actuals."""
    _require_dimension(kind, request.dimension)
    success = await set_annual_target(
        store, kind, request.year, request.target, dimension=request.dimension
    )
    return _save_response(success, 12)


@router.get("/{kind}/monthly", response_model=MonthlySeriesResponse)
async def monthly_metrics(
    year: int = Query(...),
    dimension: str | None = Query(default=None),
    kind: MetricKind = Depends(resolve_metric_kind),
    store: RecordStore = Depends(get_store),
    config: AppConfig = Depends(get_app_config),
):
    _require_dimension(kind, dimension)
    rows = await store.select(kind.collection, _filters(kind, year, dimension))
    points = monthly_series(rows, year, default_target=config.reporting.default_ppm_target)
    summary = year_summary(points)
    return MonthlySeriesResponse(
        kind=kind.value,
        year=year,
        dimension=dimension,
        months=[asdict(point) for point in points],
        summary={**asdict(summary), "on_target": summary.on_target},
    )
