"""Google Sheets worksheet target (service-account auth via gspread)."""

from __future__ import annotations

from collections.abc import Sequence
import json
from pathlib import Path
from typing import Any

from google.oauth2.service_account import Credentials
import gspread
from gspread.exceptions import GSpreadException
from gspread.utils import ValueInputOption

from transync.export.targets.base import ExportTargetError, trim_header_row

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
DEFAULT_TAB = "Transactions"


def load_service_account_credentials(
    *,
    info_json: str | None = None,
    path: str | Path | None = None,
) -> Credentials:
    """Build service-account credentials from inline JSON or a key file.

    Raises:
        ExportTargetError: If neither source is given or the key is invalid
    """
    try:
        if info_json:
            info: dict[str, Any] = json.loads(info_json)
            return Credentials.from_service_account_info(info, scopes=SCOPES)
        if path:
            return Credentials.from_service_account_file(str(path), scopes=SCOPES)
    except (ValueError, OSError) as e:
        raise ExportTargetError(f"Invalid service account credentials: {e}") from e
    raise ExportTargetError(
        "Google Sheets export needs GCP_SA_JSON or GOOGLE_APPLICATION_CREDENTIALS"
    )


def _ensure_ws(gc: gspread.Client, sheet_id: str, title: str) -> gspread.Worksheet:
    sh = gc.open_by_key(sheet_id)
    try:
        return sh.worksheet(title)
    except gspread.WorksheetNotFound:
        return sh.add_worksheet(title=title, rows=1000, cols=26)


class GoogleSheetsTarget:
    """A worksheet whose first row is the header; rows are only appended."""

    def __init__(self, worksheet: gspread.Worksheet) -> None:
        self._ws = worksheet

    @classmethod
    def open(
        cls,
        *,
        sheet_id: str,
        credentials: Credentials,
        tab: str = DEFAULT_TAB,
    ) -> GoogleSheetsTarget:
        """Open (creating if needed) a tab of a spreadsheet.

        Raises:
            ExportTargetError: If the spreadsheet cannot be opened
        """
        try:
            gc = gspread.authorize(credentials)
            return cls(_ensure_ws(gc, sheet_id, tab))
        except GSpreadException as e:
            raise ExportTargetError(f"Cannot open spreadsheet {sheet_id}: {e}") from e

    @property
    def name(self) -> str:
        return f"sheet:{self._ws.title}"

    def ensure_headers(self, headers: Sequence[str]) -> list[str]:
        try:
            existing = trim_header_row(list(self._ws.row_values(1)))
            if existing:
                return existing
            self._ws.update(
                values=[list(headers)],
                range_name="A1",
                value_input_option=ValueInputOption.raw,
            )
        except GSpreadException as e:
            raise ExportTargetError(f"Cannot write header to {self.name}: {e}") from e
        return list(headers)

    def read_keys(self, column: str) -> set[str]:
        try:
            header = trim_header_row(list(self._ws.row_values(1)))
            if column not in header:
                return set()
            values = self._ws.col_values(header.index(column) + 1)
        except GSpreadException as e:
            raise ExportTargetError(f"Cannot read {self.name}: {e}") from e
        return {str(value) for value in values[1:] if value}

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None:
        try:
            self._ws.append_rows(
                [list(row) for row in rows],
                value_input_option=ValueInputOption.raw,
                insert_data_option="INSERT_ROWS",
            )
        except GSpreadException as e:
            raise ExportTargetError(f"Cannot append to {self.name}: {e}") from e
