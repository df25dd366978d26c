"""Request/response models for the QDash web API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

# ============================================================================
# Upload Models
# ============================================================================


class UploadResponse(BaseModel):
    """Response for POST /uploads/{domain}."""

    success: bool = True
    message: str
    upload_id: str
    domain: str
    filename: str
    record_count: int
    records_inserted: int
    records_updated: int
    records_deleted: int
    target_month: Optional[str] = None


class UploadHistoryItem(BaseModel):
    id: str
    domain: str
    filename: str
    record_count: int
    upload_date: Optional[str] = None


# ============================================================================
# Analysis Models
# ============================================================================


class GroupSummaryResponse(BaseModel):
    key: str
    total_production: float
    total_defects: float
    total_amount: float
    defect_rate: float


class TimePointResponse(BaseModel):
    date: str
    defect_rate: float
    total_amount: float


class DefectTypeShareResponse(BaseModel):
    defect_type: str
    count: float
    percentage: float


class ParetoPointResponse(DefectTypeShareResponse):
    cumulative_percentage: float


class DefectTypeAnalysisResponse(BaseModel):
    """Response for GET /analysis/{domain}/defect-types."""

    domain: str
    record_count: int
    shares: List[DefectTypeShareResponse]
    pareto: List[ParetoPointResponse]


class ProcessBreakdownResponse(BaseModel):
    process: str
    total_defects: float
    defect_types: List[DefectTypeShareResponse]


# ============================================================================
# Metric Models
# ============================================================================


class AnnualTargetRequest(BaseModel):
    """Request for POST /metrics/{kind}/annual-target."""

    year: int
    target: float = Field(ge=0)
    dimension: Optional[str] = None


class SaveMetricsResponse(BaseModel):
    success: bool
    saved: int = 0
    message: str = ""


class MonthlyPointResponse(BaseModel):
    month: int
    target: float
    inspection_qty: int
    defects: int
    actual: Optional[int] = None


class YearSummaryResponse(BaseModel):
    ppm: int
    total_defects: int
    total_inspection: int
    average_target: float
    on_target: bool


class MonthlySeriesResponse(BaseModel):
    """Response for GET /metrics/{kind}/monthly."""

    kind: str
    year: int
    dimension: Optional[str] = None
    months: List[MonthlyPointResponse]
    summary: YearSummaryResponse
