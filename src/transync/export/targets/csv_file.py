"""Append-only CSV file target."""

from __future__ import annotations

from collections.abc import Sequence
import csv
from pathlib import Path

from transync.export.targets.base import ExportTargetError, trim_header_row


class CsvFileTarget:
    """A CSV file whose first row is the header and which only grows."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def name(self) -> str:
        return str(self._path)

    @property
    def path(self) -> Path:
        return self._path

    def ensure_headers(self, headers: Sequence[str]) -> list[str]:
        try:
            existing = self._read_header()
            if existing:
                return existing
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8", newline="") as f:
                csv.writer(f).writerow(headers)
        except (OSError, csv.Error) as e:
            raise ExportTargetError(f"Cannot write header to {self._path}: {e}") from e
        return list(headers)

    def read_keys(self, column: str) -> set[str]:
        if not self._path.exists():
            return set()
        try:
            with self._path.open(encoding="utf-8", newline="") as f:
                reader = csv.reader(f)
                header = trim_header_row(list(next(reader, [])))
                if column not in header:
                    return set()
                index = header.index(column)
                return {row[index] for row in reader if len(row) > index and row[index]}
        except (OSError, csv.Error) as e:
            raise ExportTargetError(f"Cannot read {self._path}: {e}") from e

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None:
        try:
            with self._path.open("a", encoding="utf-8", newline="") as f:
                csv.writer(f).writerows(rows)
        except (OSError, csv.Error) as e:
            raise ExportTargetError(f"Cannot append to {self._path}: {e}") from e

    def _read_header(self) -> list[str]:
        if not self._path.exists():
            return []
        with self._path.open(encoding="utf-8", newline="") as f:
            return trim_header_row(list(next(csv.reader(f), [])))
