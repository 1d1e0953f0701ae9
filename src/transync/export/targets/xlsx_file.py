"""Append-only XLSX workbook target."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from zipfile import BadZipFile

import openpyxl
from openpyxl.styles import Font, PatternFill
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from transync.export.targets.base import ExportTargetError, trim_header_row

DEFAULT_SHEET = "Transactions"
HEADER_FILL = PatternFill(fill_type="solid", fgColor="FFE0E0E0")

# Column widths by header, for readability only.
COLUMN_WIDTHS: dict[str, int] = {
    "Date": 12,
    "Account": 30,
    "Description": 40,
    "Amount": 12,
    "Category": 30,
    "Merchant": 30,
    "Status": 10,
    "Currency": 10,
    "Transaction ID": 30,
}


class XlsxFileTarget:
    """One sheet of an XLSX workbook, header in row 1."""

    def __init__(self, path: str | Path, *, sheet_name: str = DEFAULT_SHEET) -> None:
        self._path = Path(path)
        self._sheet_name = sheet_name
        self._workbook: Workbook | None = None

    @property
    def name(self) -> str:
        return f"{self._path}[{self._sheet_name}]"

    @property
    def path(self) -> Path:
        return self._path

    def ensure_headers(self, headers: Sequence[str]) -> list[str]:
        sheet = self._sheet()
        existing = trim_header_row([cell.value for cell in sheet[1]])
        if existing:
            return existing

        for col, header in enumerate(headers, start=1):
            cell = sheet.cell(row=1, column=col, value=header)
            cell.font = Font(bold=True)
            cell.fill = HEADER_FILL
            letter = cell.column_letter
            sheet.column_dimensions[letter].width = COLUMN_WIDTHS.get(header, 15)
        self._save()
        return list(headers)

    def read_keys(self, column: str) -> set[str]:
        sheet = self._sheet()
        header = trim_header_row([cell.value for cell in sheet[1]])
        if column not in header:
            return set()
        index = header.index(column) + 1
        return {
            str(value)
            for (value,) in sheet.iter_rows(
                min_row=2, min_col=index, max_col=index, values_only=True
            )
            if value not in (None, "")
        }

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None:
        sheet = self._sheet()
        for row in rows:
            sheet.append(list(row))
        self._save()

    def _sheet(self) -> Worksheet:
        workbook = self._load()
        if self._sheet_name in workbook.sheetnames:
            return workbook[self._sheet_name]
        # A fresh workbook comes with one empty default sheet; reuse it.
        default = workbook.active
        if (
            len(workbook.sheetnames) == 1
            and default is not None
            and default.max_row == 1
            and default["A1"].value is None
        ):
            default.title = self._sheet_name
            return default
        return workbook.create_sheet(self._sheet_name)

    def _load(self) -> Workbook:
        if self._workbook is not None:
            return self._workbook
        if not self._path.exists():
            self._workbook = openpyxl.Workbook()
            return self._workbook
        try:
            self._workbook = openpyxl.load_workbook(self._path)
        except (OSError, BadZipFile, InvalidFileException, KeyError) as e:
            raise ExportTargetError(f"Cannot open workbook {self._path}: {e}") from e
        return self._workbook

    def _save(self) -> None:
        workbook = self._load()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            workbook.save(self._path)
        except OSError as e:
            # Unsaved rows must not be read back as present on a retry.
            self._workbook = None
            raise ExportTargetError(f"Cannot save workbook {self._path}: {e}") from e
