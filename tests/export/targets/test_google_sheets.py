from __future__ import annotations

from unittest.mock import MagicMock, patch

import gspread
from gspread.utils import ValueInputOption
import pytest

from transync.export.targets.base import ExportTargetError
from transync.export.targets.google_sheets import (
    GoogleSheetsTarget,
    load_service_account_credentials,
)

HEADERS = ["Date", "Amount", "Transaction ID"]


def _worksheet(header: list[str] | None = None) -> MagicMock:
    ws = MagicMock(spec=gspread.Worksheet)
    ws.title = "Transactions"
    ws.row_values.return_value = header or []
    return ws


class TestGoogleSheetsTarget:
    def test_empty_sheet_gets_header_in_first_row(self) -> None:
        ws = _worksheet()

        headers = GoogleSheetsTarget(ws).ensure_headers(HEADERS)

        assert headers == HEADERS
        ws.update.assert_called_once_with(
            values=[HEADERS],
            range_name="A1",
            value_input_option=ValueInputOption.raw,
        )

    def test_existing_header_not_rewritten(self) -> None:
        ws = _worksheet(["Transaction ID", "Date", ""])

        headers = GoogleSheetsTarget(ws).ensure_headers(HEADERS)

        assert headers == ["Transaction ID", "Date"]
        ws.update.assert_not_called()

    def test_read_keys_skips_header_and_blanks(self) -> None:
        ws = _worksheet(HEADERS)
        ws.col_values.return_value = ["Transaction ID", "t1", "", "t2"]

        keys = GoogleSheetsTarget(ws).read_keys("Transaction ID")

        assert keys == {"t1", "t2"}
        ws.col_values.assert_called_once_with(3)

    def test_append_rows_uses_raw_insert(self) -> None:
        ws = _worksheet(HEADERS)

        GoogleSheetsTarget(ws).append_rows([("2025-01-01", "1.00", "t1")])

        ws.append_rows.assert_called_once_with(
            [["2025-01-01", "1.00", "t1"]],
            value_input_option=ValueInputOption.raw,
            insert_data_option="INSERT_ROWS",
        )

    def test_api_failure_raises_target_error(self) -> None:
        ws = _worksheet(HEADERS)
        ws.append_rows.side_effect = gspread.exceptions.GSpreadException("quota")

        with pytest.raises(ExportTargetError, match="Cannot append"):
            GoogleSheetsTarget(ws).append_rows([["a", "b", "c"]])

    def test_open_creates_missing_tab(self) -> None:
        spreadsheet = MagicMock()
        spreadsheet.worksheet.side_effect = gspread.WorksheetNotFound("Transactions")
        client = MagicMock()
        client.open_by_key.return_value = spreadsheet

        with patch(
            "transync.export.targets.google_sheets.gspread.authorize",
            return_value=client,
        ):
            GoogleSheetsTarget.open(sheet_id="sheet-1", credentials=MagicMock())

        client.open_by_key.assert_called_once_with("sheet-1")
        spreadsheet.add_worksheet.assert_called_once_with(
            title="Transactions", rows=1000, cols=26
        )


class TestLoadServiceAccountCredentials:
    def test_requires_a_source(self) -> None:
        with pytest.raises(ExportTargetError, match="GCP_SA_JSON"):
            load_service_account_credentials()

    def test_invalid_json_raises(self) -> None:
        with pytest.raises(ExportTargetError, match="Invalid service account"):
            load_service_account_credentials(info_json="{not json")

    def test_inline_json_preferred_over_path(self) -> None:
        with patch(
            "transync.export.targets.google_sheets.Credentials"
        ) as credentials_cls:
            load_service_account_credentials(
                info_json='{"type": "service_account"}', path="/unused.json"
            )

        credentials_cls.from_service_account_info.assert_called_once()
        credentials_cls.from_service_account_file.assert_not_called()
