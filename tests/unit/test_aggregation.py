"""Unit tests for the aggregation engine."""

from __future__ import annotations

import logging

import pytest

from qdash.db.models import ProcessDefectTypeModel
from qdash.reporting.aggregation import (
    UNCLASSIFIED,
    DefectTypeShare,
    by_process,
    check_slot_consistency,
    defect_type_shares,
    group_by,
    pareto_series,
    time_series,
)


def quality(part_type=None, production=0, defects=0, amount=0, day="2025-03-01", **extra):
    return {
        "part_type": part_type,
        "production_qty": production,
        "defect_qty": defects,
        "defect_amount": amount,
        "data_date": day,
        **extra,
    }


def defect_record(detail: dict[str, int], process: str | None = "사출") -> dict:
    """Record whose slots mirror its detail values, as ingestion produces."""
    values = list(detail.values())
    record = {"process": process, "defect_types_detail": dict(detail)}
    for n in range(1, 11):
        record[f"defect_type_{n}"] = values[n - 1] if n <= len(values) else 0
    record["total_defects"] = sum(values)
    return record


class TestGroupBy:
    def test_sums_and_rate(self):
        records = [
            quality("사출", 1000, 10, 500),
            quality("사출", 1000, 30, 1500),
            quality("도장", 500, 5, 100),
        ]

        summaries = {s.key: s for s in group_by(records, "part_type")}

        assert summaries["사출"].total_production == 2000
        assert summaries["사출"].total_defects == 40
        assert summaries["사출"].total_amount == 2000
        assert summaries["사출"].defect_rate == pytest.approx(2.0)
        assert summaries["도장"].defect_rate == pytest.approx(1.0)

    def test_missing_keys_are_unclassified(self):
        records = [quality(None, 100, 1), quality("  ", 100, 1), {"production_qty": 100}]

        [summary] = group_by(records, "part_type")

        assert summary.key == UNCLASSIFIED
        assert summary.total_production == 300
        assert summary.total_defects == 2

    def test_zero_production_rate_is_zero(self):
        [summary] = group_by([quality("조립", 0, 5)], "part_type")
        assert summary.defect_rate == 0

    def test_reference_order_then_defects(self):
        records = [
            quality("기타", 100, 50),
            quality("도장", 100, 1),
            quality("사출", 100, 2),
            quality("신규", 100, 9),
        ]

        keys = [s.key for s in group_by(records, "part_type", order=["사출", "도금/증착", "도장"])]

        assert keys == ["사출", "도장", "기타", "신규"]

    def test_key_function(self):
        records = [quality(customer="LGE", production=10), quality(customer="lge", production=5)]

        [summary] = group_by(records, lambda r: r["customer"].upper())

        assert summary.key == "LGE"
        assert summary.total_production == 15

    def test_malformed_values_count_as_zero(self):
        records = [quality("사출", "1,000", "x", None)]
        [summary] = group_by(records, "part_type")
        assert summary.total_production == 0
        assert summary.total_defects == 0

    def test_empty_input(self):
        assert group_by([], "customer") == []


class TestTimeSeries:
    def test_grouped_by_date_ascending(self):
        records = [
            quality(production=100, defects=2, amount=10, day="2025-03-05"),
            quality(production=100, defects=1, amount=5, day="2025-03-01"),
            quality(production=100, defects=3, amount=7, day="2025-03-05"),
        ]

        points = time_series(records)

        assert [p.date for p in points] == ["2025-03-01", "2025-03-05"]
        assert points[1].defect_rate == pytest.approx(2.5)
        assert points[1].total_amount == 17

    def test_empty_input(self):
        assert time_series([]) == []


class TestDefectTypeShares:
    def test_slots_and_detail_share_one_total(self):
        shares = defect_type_shares([defect_record({"찍힘": 6, "버": 2})])

        counts = {s.defect_type: s.count for s in shares}
        assert counts == {"Defect Type 1": 6, "찍힘": 6, "Defect Type 2": 2, "버": 2}
        assert sum(s.percentage for s in shares) == pytest.approx(100.0)
        assert {s.defect_type: s.percentage for s in shares}["찍힘"] == pytest.approx(37.5)

    def test_sorted_by_count_descending(self):
        shares = defect_type_shares(
            [defect_record({"버": 1}), defect_record({"찍힘": 4}), defect_record({"이물": 2})]
        )
        counts = [s.count for s in shares]
        assert counts == sorted(counts, reverse=True)

    def test_percentages_sum_to_hundred(self):
        records = [defect_record({"찍힘": 3, "버": 7, "이물": 11}), defect_record({"찍힘": 13})]

        shares = defect_type_shares(records)

        assert sum(s.percentage for s in shares) == pytest.approx(100.0)

    def test_empty_and_zero_inputs(self):
        assert defect_type_shares([]) == []
        assert defect_type_shares([defect_record({})]) == []

    def test_works_on_models(self):
        model = ProcessDefectTypeModel(
            process="사출", defect_types_detail={"찍힘": 2}, defect_type_1=2, total_defects=2
        )
        for n in range(2, 11):
            setattr(model, f"defect_type_{n}", 0)

        shares = defect_type_shares([model])

        assert {s.defect_type for s in shares} == {"Defect Type 1", "찍힘"}

    def test_inconsistent_slots_are_logged(self, caplog):
        record = defect_record({"찍힘": 2})
        record["defect_type_1"] = 9

        with caplog.at_level(logging.WARNING, logger="qdash.reporting.aggregation"):
            defect_type_shares([record])

        assert "disagree" in caplog.text

    def test_slot_consistency_check(self):
        assert check_slot_consistency(defect_record({"찍힘": 2, "버": 1}))
        assert check_slot_consistency(defect_record({}))
        record = defect_record({"찍힘": 2, "버": 1})
        record["defect_type_2"] = 0
        assert not check_slot_consistency(record)


class TestParetoSeries:
    @staticmethod
    def _shares(counts):
        total = sum(counts)
        return [DefectTypeShare(f"T{i}", c, c / total * 100) for i, c in enumerate(counts)]

    def test_cumulative_over_slice_only(self):
        shares = self._shares([40, 30, 20, 10])

        points = pareto_series(shares, top_n=2)

        assert [p.defect_type for p in points] == ["T0", "T1"]
        assert points[-1].cumulative_percentage == pytest.approx(70.0)
        assert points[-1].cumulative_percentage == pytest.approx(sum(p.percentage for p in points))

    def test_full_slice_reaches_hundred(self):
        points = pareto_series(self._shares([5, 3, 2]), top_n=10)
        assert points[-1].cumulative_percentage == pytest.approx(100.0)

    def test_running_sum_is_monotonic(self):
        points = pareto_series(self._shares([1, 9, 4, 6]), top_n=3)
        cumulative = [p.cumulative_percentage for p in points]
        assert cumulative == sorted(cumulative)
        assert [p.count for p in points] == [9, 6, 4]

    def test_empty(self):
        assert pareto_series([], top_n=5) == []
        assert pareto_series(self._shares([1]), top_n=0) == []


class TestByProcess:
    def test_percentages_relative_to_process(self):
        records = [
            defect_record({"찍힘": 3, "버": 1}, process="사출"),
            defect_record({"찍힘": 1}, process="도장"),
            defect_record({"버": 2}, process=None),
        ]

        breakdowns = by_process(records)

        assert [b.process for b in breakdowns] == ["사출", UNCLASSIFIED, "도장"]
        injection = breakdowns[0]
        assert injection.total_defects == 8
        assert sum(t.percentage for t in injection.defect_types) == pytest.approx(100.0)
        assert [t.count for t in injection.defect_types] == sorted(
            (t.count for t in injection.defect_types), reverse=True
        )

    def test_empty(self):
        assert by_process([]) == []
