"""SQLAlchemy async database models for QDash.

One table per record collection. Every collection that is filled from a
spreadsheet references the ``upload_batches`` row that created it.
Dates that take part in period-scoped replace are stored as ISO
``YYYY-MM-DD`` text so range filters compare lexically.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

RESPONSE_STATUSES = ("Good", "Red", "Yellow", "N/A")


class Base(DeclarativeBase):
    """Base class for all models."""

    def to_dict(self) -> dict[str, Any]:
        """Column values keyed by column name."""
        return {column.key: getattr(self, column.key) for column in self.__table__.columns}


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class UploadBatchModel(Base):
    """One spreadsheet ingestion event. Immutable once created."""

    __tablename__ = "upload_batches"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    domain: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    upload_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class UploadedRecordMixin(TimestampMixin):
    """Columns shared by every spreadsheet-backed collection."""

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    upload_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("upload_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)


class DefectTypeRecordMixin(UploadedRecordMixin):
    """Defect-type breakdown per part and process.

    ``defect_type_1..10`` are the first ten positive counters in sheet
    column order; ``defect_types_detail`` holds all of them by label.
    """

    customer: Mapped[str | None] = mapped_column(Text, index=True)
    part_code: Mapped[str | None] = mapped_column(Text)
    part_name: Mapped[str | None] = mapped_column(Text)
    process: Mapped[str | None] = mapped_column(Text, index=True)
    vehicle_model: Mapped[str | None] = mapped_column(Text)

    defect_type_1: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_2: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_3: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_4: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_5: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_6: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_7: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_8: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_9: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_type_10: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    defect_types_detail: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    total_defects: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ProcessDefectTypeModel(DefectTypeRecordMixin, Base):
    __tablename__ = "process_defect_types"


class PaintingDefectTypeModel(DefectTypeRecordMixin, Base):
    __tablename__ = "painting_defect_types"


class AssemblyDefectTypeModel(DefectTypeRecordMixin, Base):
    __tablename__ = "assembly_defect_types"


class ProcessQualityModel(UploadedRecordMixin, Base):
    """Production and defect totals per part type / customer / model."""

    __tablename__ = "process_quality"

    customer: Mapped[str | None] = mapped_column(Text, index=True)
    part_type: Mapped[str | None] = mapped_column(Text, index=True)
    vehicle_model: Mapped[str | None] = mapped_column(Text, index=True)
    product_name: Mapped[str | None] = mapped_column(Text, index=True)

    production_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defect_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # Percentage, computed at ingestion and persisted
    defect_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (
        CheckConstraint("production_qty >= 0", name="check_pq_production_non_negative"),
        CheckConstraint("defect_qty >= 0", name="check_pq_defect_non_negative"),
    )


class PartsPriceModel(UploadedRecordMixin, Base):
    """Unit price per part, reconciled by part name on every upload."""

    __tablename__ = "parts_price"

    part_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    part_code: Mapped[str | None] = mapped_column(Text)
    customer: Mapped[str | None] = mapped_column(Text)
    vehicle_model: Mapped[str | None] = mapped_column(Text)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))


class MetricMixin(TimestampMixin):
    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    inspection_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    defects: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    actual: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CustomerMetricModel(MetricMixin, Base):
    """Customer PPM per (customer, year, month)."""

    __tablename__ = "customer_metrics"

    customer: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("customer", "year", "month", name="uq_customer_metrics_key"),
        CheckConstraint("month BETWEEN 1 AND 12", name="check_customer_metrics_month"),
    )


class SupplierMetricModel(MetricMixin, Base):
    """Incoming-inspection PPM per (supplier, year, month)."""

    __tablename__ = "supplier_metrics"

    supplier: Mapped[str] = mapped_column(Text, nullable=False)
    incoming_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("supplier", "year", "month", name="uq_supplier_metrics_key"),
        CheckConstraint("month BETWEEN 1 AND 12", name="check_supplier_metrics_month"),
    )


class OutgoingMetricModel(MetricMixin, Base):
    """Outgoing (shipping) inspection PPM per (year, month)."""

    __tablename__ = "outgoing_metrics"

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_outgoing_metrics_key"),
        CheckConstraint("month BETWEEN 1 AND 12", name="check_outgoing_metrics_month"),
    )


class QuickResponseEntryModel(TimestampMixin, Base):
    """Quick-response remediation tracker entry.

    Six milestone statuses, each one of Good / Red / Yellow / N/A.
    """

    __tablename__ = "quick_response_entries"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    department: Mapped[str] = mapped_column(Text, nullable=False)
    machine_no: Mapped[str | None] = mapped_column(Text)
    defect_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    model: Mapped[str] = mapped_column(Text, nullable=False)
    defect_type: Mapped[str | None] = mapped_column(Text)
    process: Mapped[str | None] = mapped_column(Text)
    defect_content: Mapped[str | None] = mapped_column(Text)
    action: Mapped[str | None] = mapped_column(Text)
    material_manager: Mapped[str | None] = mapped_column(Text)

    status_24h: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    status_3d: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    status_14d: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    status_24d: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    status_25d: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    status_30d: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")

    remarks: Mapped[str | None] = mapped_column(Text)

    __table_args__ = tuple(
        CheckConstraint(
            f"{column} IN ({', '.join(repr(status) for status in RESPONSE_STATUSES)})",
            name=f"check_qr_{column}",
        )
        for column in (
            "status_24h",
            "status_3d",
            "status_14d",
            "status_24d",
            "status_25d",
            "status_30d",
        )
    )


COLLECTIONS: dict[str, type[Base]] = {
    "upload_batches": UploadBatchModel,
    "process_defect_types": ProcessDefectTypeModel,
    "painting_defect_types": PaintingDefectTypeModel,
    "assembly_defect_types": AssemblyDefectTypeModel,
    "process_quality": ProcessQualityModel,
    "parts_price": PartsPriceModel,
    "customer_metrics": CustomerMetricModel,
    "supplier_metrics": SupplierMetricModel,
    "outgoing_metrics": OutgoingMetricModel,
    "quick_response_entries": QuickResponseEntryModel,
}
