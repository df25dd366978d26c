"""Spreadsheet decoding for uploads.

Turns an uploaded CSV/XLSX file into the first sheet's header list, its data
rows as header → value mappings, and positional cell access. Positional
access matters for the defect-type columns, where headers may repeat or be
blank and a header-keyed mapping would lose column position.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any

import pandas as pd

from qdash.errors import UnsupportedFileError

SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".xls")
CSV_ENCODINGS = ("utf-8-sig", "cp949")


@dataclass
class DecodedSheet:
    """First sheet of an uploaded workbook.

    ``grid`` holds data rows only (the header row is removed); blank cells
    are ``None``.
    """

    headers: list[str]
    grid: list[list[Any]] = field(default_factory=list)
    filename: str = ""

    def __len__(self) -> int:
        return len(self.grid)

    @property
    def rows(self) -> list[dict[str, Any]]:
        """Data rows keyed by header text.

        Blank cells and blank headers are omitted; when a header repeats,
        the leftmost column wins.
        """
        mapped = []
        for values in self.grid:
            row: dict[str, Any] = {}
            for header, value in zip(self.headers, values):
                if not header or value is None or header in row:
                    continue
                row[header] = value
            mapped.append(row)
        return mapped

    def cell(self, row: int, column: int) -> Any:
        """Raw value at zero-based (data row, column); ``None`` outside the sheet."""
        if row < 0 or row >= len(self.grid) or column < 0:
            return None
        values = self.grid[row]
        return values[column] if column < len(values) else None


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _header_text(value: Any) -> str:
    value = _clean(value)
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _read_frame(content: bytes, suffix: str) -> pd.DataFrame:
    if suffix == ".csv":
        last_error: Exception | None = None
        for encoding in CSV_ENCODINGS:
            try:
                return pd.read_csv(
                    BytesIO(content),
                    header=None,
                    dtype=object,
                    encoding=encoding,
                    skip_blank_lines=True,
                )
            except UnicodeDecodeError as e:
                last_error = e
            except pd.errors.EmptyDataError:
                return pd.DataFrame()
        raise UnsupportedFileError(f"Could not decode CSV file: {last_error}")

    return pd.read_excel(BytesIO(content), sheet_name=0, header=None, dtype=object)


def decode_spreadsheet(
    content: bytes,
    filename: str,
    max_rows: int | None = None,
    max_upload_mb: int | None = None,
) -> DecodedSheet:
    """Decode the first sheet of a CSV or Excel upload.

    Args:
        content: Raw file bytes
        filename: Original filename (extension selects the reader)
        max_rows: Reject sheets with more data rows than this
        max_upload_mb: Reject files larger than this

    Returns:
        DecodedSheet with headers from the first row

    Raises:
        UnsupportedFileError: Unknown extension, file too large, or too many rows
    """
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise UnsupportedFileError(
            f"Unsupported file format: {suffix or filename}. Use CSV or XLSX."
        )

    if max_upload_mb is not None:
        size_mb = len(content) / (1024 * 1024)
        if size_mb > max_upload_mb:
            raise UnsupportedFileError(
                f"File too large ({size_mb:.1f}MB). Maximum allowed: {max_upload_mb}MB"
            )

    frame = _read_frame(content, suffix)
    if frame.empty:
        return DecodedSheet(headers=[], grid=[], filename=filename)

    raw = frame.values.tolist()
    headers = [_header_text(value) for value in raw[0]]

    grid = []
    for values in raw[1:]:
        cleaned = [_clean(value) for value in values]
        if all(value is None for value in cleaned):
            continue
        grid.append(cleaned)

    if max_rows is not None and len(grid) > max_rows:
        raise UnsupportedFileError(
            f"Too many rows ({len(grid):,}). Maximum allowed: {max_rows:,}"
        )

    return DecodedSheet(headers=headers, grid=grid, filename=filename)


async def decode_upload(
    content: bytes,
    filename: str,
    max_rows: int | None = None,
    max_upload_mb: int | None = None,
) -> DecodedSheet:
    """Decode off the event loop; pandas/openpyxl parsing is blocking."""
    return await asyncio.to_thread(
        decode_spreadsheet, content, filename, max_rows, max_upload_mb
    )
