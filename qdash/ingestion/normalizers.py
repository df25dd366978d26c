"""Generic upload normalizer.

Turns a decoded sheet into record dicts ready for insertion into a domain's
collection. One routine serves every domain; ``DomainSpec`` supplies the
record kind and the header aliases. Rows never fail individually: missing
or unparseable cells fall back to ``None`` / 0.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

import pandas as pd

from qdash.config import IngestionConfig
from qdash.errors import EmptyFileError, InvalidInputError
from qdash.ingestion.columns import (
    DEFECT_TYPE_SLOTS,
    extract_defect_types,
    resolve_column,
    to_number,
)
from qdash.ingestion.domains import DomainKind, DomainSpec
from qdash.ingestion.spreadsheet import DecodedSheet

logger = logging.getLogger(__name__)

TARGET_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
EXCEL_EPOCH = date(1899, 12, 30)
DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d", "%Y%m%d")


def validate_target_month(target_month: str | None) -> str | None:
    """Check a ``YYYY-MM`` target month; empty values mean "no scope".

    Raises:
        InvalidInputError: If the value is not a valid ``YYYY-MM`` month
    """
    if target_month is None or not str(target_month).strip():
        return None
    target_month = str(target_month).strip()
    if not TARGET_MONTH_PATTERN.match(target_month):
        raise InvalidInputError(f"Invalid target month '{target_month}'. Expected YYYY-MM.")
    return target_month


def coerce_date(value: Any) -> str | None:
    """Best-effort conversion of a date cell to ``YYYY-MM-DD``.

    Accepts datetime objects, Excel serial numbers, and common date text.
    Returns ``None`` for anything unrecognisable.
    """
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 1 <= value < 2958466:  # Excel serial range (through 9999-12-31)
            return (EXCEL_EPOCH + timedelta(days=int(value))).isoformat()
        return None

    text = str(value).strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text[:10], fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue

    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.strftime("%Y-%m-%d")


def resolve_data_date(value: Any, target_month: str | None, today: date) -> str:
    """Sheet date, else the 15th of the target month, else today."""
    sheet_date = coerce_date(value)
    if sheet_date:
        return sheet_date
    if target_month:
        return f"{target_month}-15"
    return today.isoformat()


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or None


def _quantity(value: Any) -> int:
    """Non-negative whole quantity; negative cells degrade to 0."""
    return max(int(math.floor(to_number(value) + 0.5)), 0)


def defect_rate(defect_qty: float, production_qty: float) -> float:
    """Defect percentage; 0 when nothing was produced."""
    if production_qty == 0:
        return 0.0
    return defect_qty / production_qty * 100


def _dimensions(spec: DomainSpec, row: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: _text(resolve_column(row, *spec.aliases[name])) for name in fields}


def _defect_type_record(
    spec: DomainSpec,
    sheet: DecodedSheet,
    index: int,
    row: dict[str, Any],
    config: IngestionConfig,
) -> dict[str, Any]:
    # Positional, so repeated or blank headers keep their own columns
    cells = [sheet.cell(index, column) for column in range(len(sheet.headers))]
    extraction = extract_defect_types(
        sheet.headers,
        cells,
        start=config.defect_type_start_column,
        count=config.defect_type_column_count,
    )

    record = _dimensions(
        spec, row, ("customer", "part_code", "part_name", "process", "vehicle_model")
    )

    # Positional slots are a prefix view over the detail values
    slots = extraction.values[:DEFECT_TYPE_SLOTS]
    for slot in range(1, DEFECT_TYPE_SLOTS + 1):
        record[f"defect_type_{slot}"] = slots[slot - 1] if slot <= len(slots) else 0

    record["defect_types_detail"] = dict(extraction.detail)
    record["total_defects"] = extraction.total
    return record


def _process_quality_record(spec: DomainSpec, row: dict[str, Any]) -> dict[str, Any]:
    record = _dimensions(spec, row, ("customer", "part_type", "vehicle_model", "product_name"))

    production_qty = _quantity(resolve_column(row, *spec.aliases["production_qty"]))
    defect_qty = _quantity(resolve_column(row, *spec.aliases["defect_qty"]))

    record.update(
        production_qty=production_qty,
        defect_qty=defect_qty,
        defect_amount=max(to_number(resolve_column(row, *spec.aliases["defect_amount"])), 0.0),
        defect_rate=defect_rate(defect_qty, production_qty),
    )
    return record


def _parts_price_record(spec: DomainSpec, row: dict[str, Any]) -> dict[str, Any]:
    record = _dimensions(spec, row, ("part_code", "customer", "vehicle_model"))
    record["part_name"] = _text(resolve_column(row, *spec.aliases["part_name"])) or ""
    unit_price = to_number(resolve_column(row, *spec.aliases["unit_price"]))
    record["unit_price"] = Decimal(str(unit_price))
    return record


def normalize_rows(
    spec: DomainSpec,
    sheet: DecodedSheet,
    upload_id: UUID,
    target_month: str | None = None,
    today: date | None = None,
    config: IngestionConfig | None = None,
) -> list[dict[str, Any]]:
    """Normalize every data row of a sheet into records for ``spec``.

    Args:
        spec: Upload domain
        sheet: Decoded spreadsheet
        upload_id: Batch identifier shared by all produced records
        target_month: Optional ``YYYY-MM`` scope, used for the date fallback
        today: Date used when neither the sheet nor the scope gives one
        config: Defect-type column layout

    Returns:
        Record dicts keyed by column name

    Raises:
        EmptyFileError: If the sheet has no data rows
        InvalidInputError: If target_month is malformed
    """
    target_month = validate_target_month(target_month)
    if len(sheet) == 0:
        raise EmptyFileError(sheet.filename or None)

    config = config or IngestionConfig()
    today = today or date.today()
    records = []

    for index, row in enumerate(sheet.rows):
        match spec.kind:
            case DomainKind.DEFECT_TYPE:
                record = _defect_type_record(spec, sheet, index, row, config)
            case DomainKind.PROCESS_QUALITY:
                record = _process_quality_record(spec, row)
            case DomainKind.PARTS_PRICE:
                record = _parts_price_record(spec, row)

        record["upload_id"] = upload_id
        record["data_date"] = resolve_data_date(
            resolve_column(row, *spec.date_aliases), target_month, today
        )
        records.append(record)

    logger.info(f"Normalized {len(records)} {spec.name} rows from {sheet.filename or 'upload'}")
    return records
