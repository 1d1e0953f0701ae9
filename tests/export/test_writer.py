from __future__ import annotations

import pytest

from tests.fixtures.sync_fakes import MemoryTarget, create_test_transactions
from transync.export.normalizer import normalize
from transync.export.writer import AppendOutcome, DedupSinkWriter
from transync.models.transaction import DEDUP_KEY_COLUMN, ROW_COLUMNS
from transync.sync.errors import RunRisk, SinkWriteError


def _rows(count: int, *, prefix: str = "txn"):
    return normalize(create_test_transactions(count, prefix=prefix))


class TestAppendNew:
    def test_writes_header_and_rows_to_empty_target(self) -> None:
        target = MemoryTarget()

        outcome = DedupSinkWriter().append_new(target, _rows(3))

        assert outcome == AppendOutcome(written=3, skipped=0)
        assert target.rows[0] == list(ROW_COLUMNS)
        assert [row[-1] for row in target.data_rows] == ["txn_0", "txn_1", "txn_2"]
        assert target.append_calls == 1

    def test_second_write_of_same_rows_is_noop(self) -> None:
        target = MemoryTarget()
        writer = DedupSinkWriter()
        rows = _rows(3)

        writer.append_new(target, rows)
        outcome = writer.append_new(target, rows)

        assert outcome == AppendOutcome(written=0, skipped=3)
        assert len(target.data_rows) == 3
        assert target.append_calls == 1

    def test_header_written_only_once(self) -> None:
        target = MemoryTarget()
        writer = DedupSinkWriter()

        writer.append_new(target, _rows(1, prefix="a"))
        writer.append_new(target, _rows(1, prefix="b"))

        assert target.header_writes == 1
        assert target.rows.count(list(ROW_COLUMNS)) == 1

    def test_only_new_keys_appended_in_input_order(self) -> None:
        target = MemoryTarget()
        writer = DedupSinkWriter()
        writer.append_new(target, _rows(2))

        outcome = writer.append_new(target, _rows(4))

        assert outcome == AppendOutcome(written=2, skipped=2)
        assert [row[-1] for row in target.data_rows] == [
            "txn_0",
            "txn_1",
            "txn_2",
            "txn_3",
        ]

    def test_repeated_key_within_batch_written_once(self) -> None:
        target = MemoryTarget()
        first, second = _rows(2)

        outcome = DedupSinkWriter().append_new(target, [first, second, first])

        assert outcome == AppendOutcome(written=2, skipped=1)
        assert len(target.data_rows) == 2

    def test_empty_batch_makes_no_append_call(self) -> None:
        target = MemoryTarget()

        outcome = DedupSinkWriter().append_new(target, [])

        assert outcome == AppendOutcome(written=0, skipped=0)
        assert target.append_calls == 0

    def test_existing_header_order_is_respected(self) -> None:
        reordered = [DEDUP_KEY_COLUMN, "Amount", "Date"]
        target = MemoryTarget(rows=[reordered])

        DedupSinkWriter().append_new(target, _rows(1))

        assert target.data_rows == [["txn_0", "10.0", "2025-01-01"]]

    def test_existing_sheet_without_key_column_fails(self) -> None:
        target = MemoryTarget(rows=[["Date", "Amount"]])

        with pytest.raises(SinkWriteError, match="Transaction ID"):
            DedupSinkWriter().append_new(target, _rows(1))

        assert target.append_calls == 0

    def test_append_failure_is_sink_write_error(self) -> None:
        target = MemoryTarget(fail_appends=True)

        with pytest.raises(SinkWriteError, match="quota exceeded") as exc_info:
            DedupSinkWriter().append_new(target, _rows(2))

        assert exc_info.value.risk is RunRisk.DATA_LOSS


def test_key_column_must_be_in_schema() -> None:
    with pytest.raises(ValueError, match="not in the schema"):
        DedupSinkWriter(columns=["Date"], key_column="Transaction ID")
