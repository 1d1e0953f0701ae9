"""Export targets: append-only row sinks keyed by a dedup column."""

from __future__ import annotations

from transync.export.targets.base import ExportTargetError
from transync.export.targets.csv_file import CsvFileTarget
from transync.export.targets.xlsx_file import XlsxFileTarget

__all__ = [
    "CsvFileTarget",
    "ExportTargetError",
    "XlsxFileTarget",
]
