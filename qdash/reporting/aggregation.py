"""Aggregations behind every QDash chart and table.

All functions are pure and total: they accept ORM instances or plain dicts,
tolerate missing fields (treated as None / 0), and return an empty list for
an empty input.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from qdash.ingestion.columns import DEFECT_TYPE_SLOTS, to_number

logger = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"
SLOT_COUNT = DEFECT_TYPE_SLOTS
SLOT_FIELDS = tuple(f"defect_type_{n}" for n in range(1, SLOT_COUNT + 1))


@dataclass
class GroupSummary:
    """Production and defect totals for one group."""

    key: str
    total_production: float
    total_defects: float
    total_amount: float
    defect_rate: float


@dataclass
class TimePoint:
    date: str
    defect_rate: float
    total_amount: float


@dataclass
class DefectTypeShare:
    """Count of one defect type and its share of the total (percent)."""

    defect_type: str
    count: float
    percentage: float


@dataclass
class ParetoPoint:
    defect_type: str
    count: float
    percentage: float
    cumulative_percentage: float


@dataclass
class ProcessBreakdown:
    """Defect-type shares within one process."""

    process: str
    total_defects: float
    defect_types: list[DefectTypeShare] = field(default_factory=list)


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _rate(defects: float, production: float) -> float:
    return defects / production * 100 if production else 0.0


def _label(value: Any) -> str:
    if value is None:
        return UNCLASSIFIED
    text = str(value).strip()
    return text or UNCLASSIFIED


def group_by(
    records: Iterable[Any],
    key: str | Callable[[Any], Any],
    order: Sequence[str] | None = None,
) -> list[GroupSummary]:
    """Sum production, defects and amount per group.

    Args:
        records: Process-quality records
        key: Field name or key function (part type, customer, model, ...)
        order: Optional preferred key order; listed keys come first in that
            order, the rest follow by total defects descending

    Returns:
        One GroupSummary per key; missing keys are grouped as "unclassified"
    """
    key_fn = key if callable(key) else (lambda record: _field(record, key))
    totals: dict[str, list[float]] = defaultdict(lambda: [0.0, 0.0, 0.0])

    for record in records:
        bucket = totals[_label(key_fn(record))]
        bucket[0] += to_number(_field(record, "production_qty"))
        bucket[1] += to_number(_field(record, "defect_qty"))
        bucket[2] += to_number(_field(record, "defect_amount"))

    summaries = [
        GroupSummary(
            key=name,
            total_production=production,
            total_defects=defects,
            total_amount=amount,
            defect_rate=_rate(defects, production),
        )
        for name, (production, defects, amount) in totals.items()
    ]

    rank = {name: index for index, name in enumerate(order or [])}
    summaries.sort(key=lambda s: (rank.get(s.key, len(rank)), -s.total_defects))
    return summaries


def time_series(records: Iterable[Any]) -> list[TimePoint]:
    """Defect rate and amount per exact ``data_date``, oldest first."""
    totals: dict[str, list[float]] = defaultdict(lambda: [0.0, 0.0, 0.0])

    for record in records:
        bucket = totals[str(_field(record, "data_date") or "")]
        bucket[0] += to_number(_field(record, "production_qty"))
        bucket[1] += to_number(_field(record, "defect_qty"))
        bucket[2] += to_number(_field(record, "defect_amount"))

    return [
        TimePoint(date=day, defect_rate=_rate(defects, production), total_amount=amount)
        for day, (production, defects, amount) in sorted(totals.items())
    ]


def check_slot_consistency(record: Any) -> bool:
    """Whether a record's slots are the positional prefix of its detail values.

    Detail maps preserve column order, so the first ten detail values must
    equal the ten slots (zero-padded).
    """
    detail = _field(record, "defect_types_detail") or {}
    expected = [to_number(value) for value in list(detail.values())[:SLOT_COUNT]]
    expected += [0.0] * (SLOT_COUNT - len(expected))
    slots = [to_number(_field(record, name)) for name in SLOT_FIELDS]
    return slots == expected


def _accumulate(records: Iterable[Any], counts: dict[str, float]) -> None:
    # Slots and detail describe the same row; both feed one accumulator
    for record in records:
        if not check_slot_consistency(record):
            logger.warning(
                f"Defect-type slots disagree with detail for record {_field(record, 'id')}"
            )

        for index, name in enumerate(SLOT_FIELDS, start=1):
            value = to_number(_field(record, name))
            if value:
                counts[f"Defect Type {index}"] += value

        detail = _field(record, "defect_types_detail") or {}
        for label, value in detail.items():
            value = to_number(value)
            if value:
                counts[str(label)] += value


def _shares(counts: dict[str, float]) -> list[DefectTypeShare]:
    grand_total = sum(counts.values())
    shares = [
        DefectTypeShare(
            defect_type=label,
            count=count,
            percentage=count / grand_total * 100 if grand_total else 0.0,
        )
        for label, count in counts.items()
        if count
    ]
    shares.sort(key=lambda share: share.count, reverse=True)
    return shares


def defect_type_shares(records: Iterable[Any]) -> list[DefectTypeShare]:
    """Count and percentage per defect type across all records, largest first."""
    counts: dict[str, float] = defaultdict(float)
    _accumulate(records, counts)
    return _shares(counts)


def pareto_series(shares: Sequence[DefectTypeShare], top_n: int = 10) -> list[ParetoPoint]:
    """Top-N shares with a running cumulative percentage.

    The running sum starts at the first entry of the slice, so the last
    cumulative value equals the slice's own percentage total.
    """
    top = sorted(shares, key=lambda share: share.count, reverse=True)[: max(top_n, 0)]

    points = []
    cumulative = 0.0
    for share in top:
        cumulative += share.percentage
        points.append(
            ParetoPoint(
                defect_type=share.defect_type,
                count=share.count,
                percentage=share.percentage,
                cumulative_percentage=cumulative,
            )
        )
    return points


def by_process(records: Iterable[Any]) -> list[ProcessBreakdown]:
    """Defect-type shares per process, each relative to its own process total."""
    partitions: dict[str, list[Any]] = defaultdict(list)
    for record in records:
        partitions[_label(_field(record, "process"))].append(record)

    breakdowns = []
    for process, members in partitions.items():
        counts: dict[str, float] = defaultdict(float)
        _accumulate(members, counts)
        breakdowns.append(
            ProcessBreakdown(
                process=process,
                total_defects=sum(counts.values()),
                defect_types=_shares(counts),
            )
        )

    breakdowns.sort(key=lambda breakdown: breakdown.total_defects, reverse=True)
    return breakdowns
