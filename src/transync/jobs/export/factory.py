from __future__ import annotations

import os

from transync.adapters.db.facade import DB
from transync.core.config import ExportConfig
from transync.export.targets.csv_file import CsvFileTarget
from transync.export.targets.google_sheets import (
    GoogleSheetsTarget,
    load_service_account_credentials,
)
from transync.export.targets.xlsx_file import XlsxFileTarget
from transync.sync.cursor_store import DbCursorStore, FileCursorStore
from transync.sync.protocol import Credential, ExportTarget


class CredentialResolutionError(Exception):
    """No usable Plaid credential could be found."""


def create_export_target(
    *, config: ExportConfig, file_stem: str = "transactions"
) -> ExportTarget:
    """Create the sink selected by EXPORT_FORMAT."""
    if config.export_format == "csv":
        return CsvFileTarget(config.export_dir / f"{file_stem}.csv")

    if config.export_format == "xlsx":
        return XlsxFileTarget(config.export_dir / f"{file_stem}.xlsx")

    if config.export_format == "sheets":
        if not config.sheet_id:
            raise ValueError("GOOGLE_SHEET_ID is required for Google Sheets export")
        credentials = load_service_account_credentials(
            info_json=config.service_account_json,
            path=config.service_account_file,
        )
        return GoogleSheetsTarget.open(
            sheet_id=config.sheet_id, credentials=credentials, tab=config.sheet_tab
        )

    raise ValueError(f"Unknown export format: {config.export_format}")


def create_cursor_store(
    *, config: ExportConfig, db: DB | None = None
) -> FileCursorStore | DbCursorStore:
    """Create the cursor slot backend selected by TRANSYNC_CURSOR_BACKEND."""
    if config.cursor_backend == "file":
        return FileCursorStore(config.cursor_dir, env=config.plaid_env)

    if config.cursor_backend == "db":
        if db is None:
            raise ValueError("A database is required for the db cursor backend")
        return DbCursorStore(db)

    raise ValueError(f"Unknown cursor backend: {config.cursor_backend}")


def resolve_credential(*, db: DB | None = None, item_id: str | None = None) -> Credential:
    """Resolve the credential for one run.

    PLAID_ACCESS_TOKEN wins when set, keyed by ``item_id`` or PLAID_ITEM_ID.
    Otherwise the item is looked up in the database; without ``item_id`` the
    database must hold exactly one item.

    Raises:
        CredentialResolutionError: If no single credential can be resolved
    """
    access_token = os.environ.get("PLAID_ACCESS_TOKEN", "").strip()
    if access_token:
        key = item_id or os.environ.get("PLAID_ITEM_ID", "").strip() or "default"
        return Credential(key=key, access_token=access_token)

    if db is None:
        raise CredentialResolutionError(
            "Set PLAID_ACCESS_TOKEN or register an item with `transync item add`"
        )

    if item_id:
        item = db.get_plaid_item(item_id)
        if item is None:
            raise CredentialResolutionError(f"No Plaid item with id {item_id!r}")
        return Credential(key=item.item_id, access_token=item.access_token)

    items = db.list_plaid_items()
    if len(items) != 1:
        raise CredentialResolutionError(
            f"Found {len(items)} Plaid items; pass --item-id to choose one"
        )
    return Credential(key=items[0].item_id, access_token=items[0].access_token)
