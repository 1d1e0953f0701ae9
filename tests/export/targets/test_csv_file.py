from __future__ import annotations

import csv
from pathlib import Path

import pytest

from transync.export.targets.base import ExportTargetError, trim_header_row
from transync.export.targets.csv_file import CsvFileTarget

HEADERS = ["Date", "Amount", "Transaction ID"]


def _read(path: Path) -> list[list[str]]:
    with path.open(encoding="utf-8", newline="") as f:
        return list(csv.reader(f))


class TestCsvFileTarget:
    def test_ensure_headers_creates_file(self, tmp_path: Path) -> None:
        path = tmp_path / "out" / "transactions.csv"
        target = CsvFileTarget(path)

        assert target.ensure_headers(HEADERS) == HEADERS

        assert _read(path) == [HEADERS]

    def test_ensure_headers_keeps_existing_header(self, tmp_path: Path) -> None:
        path = tmp_path / "transactions.csv"
        path.write_text("Transaction ID,Date\nt1,2025-01-01\n", encoding="utf-8")

        headers = CsvFileTarget(path).ensure_headers(HEADERS)

        assert headers == ["Transaction ID", "Date"]
        assert len(_read(path)) == 2

    def test_read_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "transactions.csv"
        target = CsvFileTarget(path)
        target.ensure_headers(HEADERS)
        target.append_rows([["2025-01-01", "1.00", "t1"], ["2025-01-02", "2.00", ""]])

        assert target.read_keys("Transaction ID") == {"t1"}

    def test_read_keys_of_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert CsvFileTarget(tmp_path / "nope.csv").read_keys("Transaction ID") == set()

    def test_read_keys_of_unknown_column_is_empty(self, tmp_path: Path) -> None:
        target = CsvFileTarget(tmp_path / "transactions.csv")
        target.ensure_headers(HEADERS)

        assert target.read_keys("Missing") == set()

    def test_append_rows_preserves_earlier_rows(self, tmp_path: Path) -> None:
        path = tmp_path / "transactions.csv"
        target = CsvFileTarget(path)
        target.ensure_headers(HEADERS)

        target.append_rows([["2025-01-01", "1.00", "t1"]])
        target.append_rows([["2025-01-02", "2.00", "t2"]])

        assert _read(path) == [
            HEADERS,
            ["2025-01-01", "1.00", "t1"],
            ["2025-01-02", "2.00", "t2"],
        ]

    def test_unwritable_location_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        target = CsvFileTarget(blocker / "transactions.csv")

        with pytest.raises(ExportTargetError, match="Cannot write header"):
            target.ensure_headers(HEADERS)


def test_trim_header_row_drops_trailing_blanks() -> None:
    assert trim_header_row(["Date", None, "Amount", "", None]) == ["Date", "", "Amount"]
