"""Cell-level helpers shared by every upload normalizer.

- ``to_number``: total numeric coercion (anything unparseable is 0)
- ``resolve_column``: header lookup by alias list, tolerant of ``[...]``
  unit annotations
- ``extract_defect_types``: positional defect-type counters (columns N..AG)
"""

from __future__ import annotations

import math
import numbers
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

DEFECT_TYPE_START = 13  # column N
DEFECT_TYPE_COUNT = 20  # through column AG
DEFECT_TYPE_SLOTS = 10  # defect_type_1..defect_type_10

_BRACKETED = re.compile(r"\[[^\]]*\]")


def to_number(value: Any) -> float:
    """Convert a cell value to a finite number, 0 when that is not possible."""
    if value is None:
        return 0.0
    if isinstance(value, numbers.Number):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
    else:
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0

    return number if math.isfinite(number) else 0.0


def normalize_header(name: Any) -> str:
    """Drop ``[...]`` annotations and surrounding whitespace from a header."""
    return _BRACKETED.sub("", str(name)).strip()


def resolve_column(row: Mapping[str, Any], *candidates: str) -> Any:
    """Return the value of the first matching header, or ``None``.

    Exact matches are tried first, in candidate order, and win even when the
    value is falsy. Otherwise candidates and actual headers are compared
    after ``normalize_header``, still in candidate order.
    """
    for name in candidates:
        if name in row:
            return row[name]

    normalized_keys = [(normalize_header(key), key) for key in row]
    for name in candidates:
        target = normalize_header(name)
        for normalized, key in normalized_keys:
            if normalized == target:
                return row[key]

    return None


@dataclass
class DefectTypeExtraction:
    """Positive defect-type counters found in one row."""

    detail: dict[str, int] = field(default_factory=dict)
    values: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.values)


def _as_count(number: float) -> int:
    """Round a counter half up; the count columns are integers."""
    return int(math.floor(number + 0.5))


def extract_defect_types(
    headers: Sequence[str],
    values: Sequence[Any],
    start: int = DEFECT_TYPE_START,
    count: int = DEFECT_TYPE_COUNT,
) -> DefectTypeExtraction:
    """Collect positive counters from the fixed defect-type column range.

    Args:
        headers: Header text in sheet order
        values: Cell values of one data row, in sheet order
        start: Zero-based first column of the range
        count: Number of columns in the range

    Returns:
        DefectTypeExtraction; counts are rounded half up, and cells that
        round to zero or below (blank, negative, under 0.5) are dropped.
        Sheets narrower than the range yield fewer entries.
    """
    extraction = DefectTypeExtraction()

    for index in range(start, min(start + count, len(headers))):
        raw = values[index] if index < len(values) else None
        number = _as_count(to_number(raw))
        if number <= 0:
            continue

        label = headers[index] or f"Column {index + 1}"
        extraction.values.append(number)
        extraction.detail[label] = extraction.detail.get(label, 0) + number

    return extraction
