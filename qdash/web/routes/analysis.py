"""Analysis routes: process-quality groups and trends, defect-type shares.

Every view re-selects the collection and aggregates in memory.

Routes:
- GET /analysis/process-quality/groups?by=     - Totals per part type / customer / model / product
- GET /analysis/process-quality/trend          - Defect rate and amount per day
- GET /analysis/{domain}/defect-types?top=     - Shares and Pareto series
- GET /analysis/{domain}/by-process            - Shares per process
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, Depends, Query

from qdash.config import AppConfig
from qdash.db.store import RecordStore
from qdash.ingestion.domains import DomainSpec
from qdash.ingestion.uploads import month_range
from qdash.reporting.aggregation import (
    by_process,
    defect_type_shares,
    group_by,
    pareto_series,
    time_series,
)
from qdash.web.dependencies import get_app_config, get_store, resolve_defect_type_domain
from qdash.web.models import (
    DefectTypeAnalysisResponse,
    GroupSummaryResponse,
    ProcessBreakdownResponse,
    TimePointResponse,
)

router = APIRouter(prefix="/analysis", tags=["analysis"])

GroupKey = Literal["part_type", "customer", "vehicle_model", "product_name"]


def _period_filters(month: str | None) -> dict:
    return {"data_date": month_range(month)} if month else {}


@router.get("/process-quality/groups", response_model=list[GroupSummaryResponse])
async def process_quality_groups(
    by: GroupKey = Query(default="part_type"),
    month: str | None = Query(default=None, description="Limit to one month (YYYY-MM)"),
    store: RecordStore = Depends(get_store),
    config: AppConfig = Depends(get_app_config),
):
    """Production, defects, amount and defect rate per group."""
    records = await store.select("process_quality", _period_filters(month))
    order = config.load_reference_data().part_type_order if by == "part_type" else None
    return [asdict(summary) for summary in group_by(records, by, order=order)]


@router.get("/process-quality/trend", response_model=list[TimePointResponse])
async def process_quality_trend(
    month: str | None = Query(default=None, description="Limit to one month (YYYY-MM)"),
    store: RecordStore = Depends(get_store),
):
    records = await store.select("process_quality", _period_filters(month))
    return [asdict(point) for point in time_series(records)]


@router.get("/{domain}/defect-types", response_model=DefectTypeAnalysisResponse)
async def defect_type_analysis(
    top: int | None = Query(default=None, ge=1, le=20),
    month: str | None = Query(default=None, description="Limit to one month (YYYY-MM)"),
    spec: DomainSpec = Depends(resolve_defect_type_domain),
    store: RecordStore = Depends(get_store),
    config: AppConfig = Depends(get_app_config),
):
    """Defect-type shares of the grand total and the top-N Pareto series."""
    records = await store.select(spec.collection, _period_filters(month))
    shares = defect_type_shares(records)
    pareto = pareto_series(shares, top or config.reporting.pareto_top_n)
    return DefectTypeAnalysisResponse(
        domain=spec.name,
        record_count=len(records),
        shares=[asdict(share) for share in shares],
        pareto=[asdict(point) for point in pareto],
    )


@router.get("/{domain}/by-process", response_model=list[ProcessBreakdownResponse])
async def defect_types_by_process(
    month: str | None = Query(default=None, description="Limit to one month (YYYY-MM)"),
    spec: DomainSpec = Depends(resolve_defect_type_domain),
    store: RecordStore = Depends(get_store),
):
    records = await store.select(spec.collection, _period_filters(month))
    return [asdict(breakdown) for breakdown in by_process(records)]
