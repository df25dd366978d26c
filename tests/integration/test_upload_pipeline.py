"""Integration tests for the upload pipeline against an in-memory database.

Covers period-scoped replace, append without a period, parts-price
reconciliation, transactional rollback, and batch history.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from qdash.db.store import RecordStore
from qdash.errors import EmptyFileError, PersistenceError, PersistenceErrorKind
from qdash.ingestion.uploads import (
    batch_filename,
    delete_upload,
    ingest_upload,
    list_uploads,
    month_range,
)

TODAY = date(2025, 6, 9)


async def _count(store: RecordStore, collection: str, **filters) -> int:
    return len(await store.select(collection, filters or None))


class TestMonthRange:
    def test_inclusive_lexical_bounds(self):
        period = month_range("2025-02")
        assert (period.start, period.end) == ("2025-02-01", "2025-02-31")

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            month_range("2025-2")

    def test_batch_filename_prefix(self):
        assert batch_filename("report.xlsx", "2025-03") == "[2025-03] report.xlsx"
        assert batch_filename("report.xlsx", None) == "report.xlsx"


class TestPeriodReplace:
    @pytest.mark.asyncio
    async def test_reupload_same_month_is_idempotent(self, store, defect_sheet_bytes, test_config):
        first = await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "march.xlsx",
            target_month="2025-03", today=TODAY, config=test_config,
        )
        count_after_first = await _count(store, "process_defect_types")

        second = await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "march.xlsx",
            target_month="2025-03", today=TODAY, config=test_config,
        )
        records = await store.select("process_defect_types")

        assert count_after_first == 3
        assert len(records) == count_after_first
        assert second.records_deleted == 3
        assert {record.upload_id for record in records} == {second.upload_id}
        assert first.upload_id != second.upload_id

    @pytest.mark.asyncio
    async def test_records_persist_normalized_values(self, store, defect_sheet_bytes, test_config):
        await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "march.xlsx",
            target_month="2025-03", today=TODAY, config=test_config,
        )

        records = await store.select("process_defect_types", order_by="data_date")

        # Third row has no date and falls back to the middle of the target month
        assert [r.data_date for r in records] == ["2025-03-04", "2025-03-11", "2025-03-15"]
        for record in records:
            assert record.total_defects == sum(record.defect_types_detail.values())
        assert records[0].defect_types_detail == {"찍힘": 3, "이물": 1}
        assert records[2].defect_type_1 == 4
        assert records[2].defect_type_2 == 1

    @pytest.mark.asyncio
    async def test_only_target_month_is_replaced(
        self, store, make_xlsx, defect_headers, make_defect_row, test_config
    ):
        content = make_xlsx(
            defect_headers,
            [
                make_defect_row("2025-02-28", {0: 1}),
                make_defect_row("2025-03-01", {0: 1}),
                make_defect_row("2025-03-31", {0: 1}),
                make_defect_row("2025-04-01", {0: 1}),
            ],
        )
        await ingest_upload(store, "painting_defect_types", content, "mixed.xlsx", config=test_config)

        replacement = make_xlsx(defect_headers, [make_defect_row("2025-03-20", {1: 2})])
        result = await ingest_upload(
            store, "painting_defect_types", replacement, "march.xlsx",
            target_month="2025-03", config=test_config,
        )

        dates = sorted(r.data_date for r in await store.select("painting_defect_types"))
        assert result.records_deleted == 2
        assert dates == ["2025-02-28", "2025-03-20", "2025-04-01"]

    @pytest.mark.asyncio
    async def test_unscoped_upload_appends(self, store, defect_sheet_bytes, test_config):
        for _ in range(2):
            await ingest_upload(
                store, "assembly_defect_types", defect_sheet_bytes, "any.xlsx",
                today=TODAY, config=test_config,
            )

        assert await _count(store, "assembly_defect_types") == 6

    @pytest.mark.asyncio
    async def test_domains_are_isolated(self, store, defect_sheet_bytes, test_config):
        await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "p.xlsx",
            target_month="2025-03", config=test_config,
        )
        await ingest_upload(
            store, "painting_defect_types", defect_sheet_bytes, "d.xlsx",
            target_month="2025-03", config=test_config,
        )

        assert await _count(store, "process_defect_types") == 3
        assert await _count(store, "painting_defect_types") == 3

    @pytest.mark.asyncio
    async def test_process_quality_upload(self, store, make_xlsx, test_config):
        content = make_xlsx(
            ["일자", "부품유형", "고객사", "차종", "품명", "생산수량", "불량수량", "불량금액"],
            [
                ["2025-03-03", "사출", "LGE", "RV", "Cover", 1000, 20, 5000],
                ["2025-03-04", "도장", "LGIT", "SUV", "Knob", 0, 3, 900],
            ],
        )

        result = await ingest_upload(
            store, "process_quality", content, "pq.xlsx", target_month="2025-03", config=test_config
        )
        records = await store.select("process_quality", order_by="data_date")

        assert result.records_inserted == 2
        assert records[0].defect_rate == pytest.approx(2.0)
        assert records[1].defect_rate == 0

    @pytest.mark.asyncio
    async def test_negative_quantity_row_is_ingested(self, store, make_xlsx, test_config):
        content = make_xlsx(
            ["일자", "부품유형", "생산수량", "불량수량", "불량금액"],
            [
                ["2025-03-03", "사출", 1000, 20, 5000],
                ["2025-03-04", "사출", -5, 0, 0],
            ],
        )

        result = await ingest_upload(
            store, "process_quality", content, "pq.xlsx", target_month="2025-03", config=test_config
        )
        records = await store.select("process_quality", order_by="data_date")

        assert result.records_inserted == 2
        assert records[1].production_qty == 0
        assert records[1].defect_rate == 0


class TestBatches:
    @pytest.mark.asyncio
    async def test_batch_created_with_prefix_and_count(self, store, defect_sheet_bytes, test_config):
        result = await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "march.xlsx",
            target_month="2025-03", config=test_config,
        )

        [batch] = await store.select("upload_batches")
        assert batch.id == result.upload_id
        assert batch.domain == "process_defect_types"
        assert batch.filename == "[2025-03] march.xlsx"
        assert batch.record_count == 3

    @pytest.mark.asyncio
    async def test_history_and_delete(self, store, defect_sheet_bytes, test_config):
        first = await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "a.xlsx", today=TODAY, config=test_config
        )
        second = await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "b.xlsx", today=TODAY, config=test_config
        )

        history = await list_uploads(store, "process_defect_types")
        assert {u.id for u in history} == {first.upload_id, second.upload_id}
        assert await list_uploads(store, "painting_defect_types") == []

        deleted = await delete_upload(store, "process_defect_types", first.upload_id)

        assert deleted == 3
        remaining = await store.select("process_defect_types")
        assert {r.upload_id for r in remaining} == {second.upload_id}
        assert [u.id for u in await list_uploads(store, "process_defect_types")] == [second.upload_id]

    @pytest.mark.asyncio
    async def test_delete_unknown_or_foreign_batch(self, store, defect_sheet_bytes, test_config):
        result = await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "a.xlsx", config=test_config
        )

        assert await delete_upload(store, "process_defect_types", uuid4()) is None
        assert await delete_upload(store, "painting_defect_types", result.upload_id) is None
        assert await _count(store, "process_defect_types") == 3


class TestPartsPrice:
    @pytest.mark.asyncio
    async def test_existing_part_is_updated_in_place(self, store, make_xlsx, test_config):
        await ingest_upload(
            store, "parts_price", make_xlsx(["품명", "단가"], [["Bracket-A", 100]]), "v1.xlsx",
            config=test_config,
        )
        [original] = await store.select("parts_price")

        result = await ingest_upload(
            store, "parts_price",
            make_xlsx(["품명", "단가"], [["Bracket-A", 150], ["Bracket-B", 80]]),
            "v2.xlsx", config=test_config,
        )

        bracket_a = await store.select("parts_price", {"part_name": "Bracket-A"})
        assert len(bracket_a) == 1
        assert bracket_a[0].id == original.id
        assert bracket_a[0].unit_price == Decimal("150")
        assert bracket_a[0].upload_id == result.upload_id
        assert result.records_updated == 1
        assert result.records_inserted == 1
        assert await _count(store, "parts_price") == 2
        assert await _count(store, "upload_batches") == 2

    @pytest.mark.asyncio
    async def test_target_month_does_not_delete(self, store, make_xlsx, test_config):
        await ingest_upload(
            store, "parts_price", make_xlsx(["품명", "단가"], [["Bracket-A", 100]]), "v1.xlsx",
            target_month="2025-03", config=test_config,
        )
        result = await ingest_upload(
            store, "parts_price", make_xlsx(["품명", "단가"], [["Bracket-C", 10]]), "v2.xlsx",
            target_month="2025-03", config=test_config,
        )

        assert result.records_deleted == 0
        assert await _count(store, "parts_price") == 2

    @pytest.mark.asyncio
    async def test_repeated_part_in_one_upload_keeps_last(self, store, make_xlsx, test_config):
        content = make_xlsx(["품명", "단가"], [["Bracket-A", 100], ["Bracket-A", 120]])

        await ingest_upload(store, "parts_price", content, "dup.xlsx", config=test_config)

        [record] = await store.select("parts_price")
        assert record.unit_price == Decimal("120")


class TestFailures:
    @pytest.mark.asyncio
    async def test_empty_upload_touches_no_persistence(self, make_xlsx, defect_headers, test_config):
        store = AsyncMock(spec=RecordStore)
        content = make_xlsx(defect_headers, [])

        with pytest.raises(EmptyFileError):
            await ingest_upload(
                store, "process_defect_types", content, "empty.xlsx",
                target_month="2025-03", config=test_config,
            )

        store.delete.assert_not_called()
        store.insert.assert_not_called()
        store.upsert.assert_not_called()
        store.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_insert_failure_rolls_back_delete(
        self, store, defect_sheet_bytes, test_config, monkeypatch
    ):
        await ingest_upload(
            store, "process_defect_types", defect_sheet_bytes, "march.xlsx",
            target_month="2025-03", config=test_config,
        )

        original_insert = store.insert

        async def failing_insert(collection, records):
            if collection == "process_defect_types":
                raise PersistenceError(PersistenceErrorKind.MISSING_COLUMN, "no such column: updated_at")
            return await original_insert(collection, records)

        monkeypatch.setattr(store, "insert", failing_insert)

        with pytest.raises(PersistenceError) as exc_info:
            await ingest_upload(
                store, "process_defect_types", defect_sheet_bytes, "march.xlsx",
                target_month="2025-03", config=test_config,
            )

        assert exc_info.value.kind is PersistenceErrorKind.MISSING_COLUMN
        assert await _count(store, "process_defect_types") == 3
        assert await _count(store, "upload_batches") == 1

    @pytest.mark.asyncio
    async def test_unknown_domain(self, store, defect_sheet_bytes, test_config):
        with pytest.raises(ValueError, match="Unknown upload domain"):
            await ingest_upload(store, "ncr", defect_sheet_bytes, "x.xlsx", config=test_config)
