from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
import json
import sys
from typing import Any

from dotenv import load_dotenv
from loguru import logger
import typer

from transync.adapters.clients.plaid import PlaidClient, PlaidClientError
from transync.adapters.clients.plaid_source import PlaidTransactionSource
from transync.adapters.db.facade import DB
from transync.adapters.storage.r2 import R2StorageError, upload_export_file
from transync.core.config import ExportConfig, load_export_config_from_env
from transync.export.normalizer import normalize
from transync.export.targets.base import ExportTargetError
from transync.export.writer import DedupSinkWriter
from transync.jobs.export.factory import (
    CredentialResolutionError,
    create_cursor_store,
    create_export_target,
    resolve_credential,
)
from transync.jobs.export.runner import ExportOptions, ExportRunner
from transync.sync.errors import SyncError
from transync.sync.fetcher import PaginatedFetcher
from transync.sync.protocol import Credential
from transync.sync.reconciler import SyncReconciler

# Load environment variables from .env
load_dotenv()

app = typer.Typer(help="Transync: incremental Plaid transaction export.")
cursor_app = typer.Typer(help="Inspect or reset sync cursors.")
item_app = typer.Typer(help="Manage stored Plaid items.")
app.add_typer(cursor_app, name="cursor")
app.add_typer(item_app, name="item")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss} [{level}] {name}: {message}",
        level="DEBUG" if verbose else "INFO",
    )


def _load_config(export_format: str | None) -> ExportConfig:
    try:
        config = load_export_config_from_env()
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    if export_format:
        if export_format not in {"csv", "xlsx", "sheets"}:
            raise typer.BadParameter("--format must be one of: csv, xlsx, sheets")
        config = replace(config, export_format=export_format)  # type: ignore[arg-type]
    return config


def _open_db(config: ExportConfig) -> DB:
    db = DB(config.database_url)
    db.create_schema()
    return db


def _resolve(db: DB, item_id: str | None) -> Credential:
    try:
        return resolve_credential(db=db, item_id=item_id)
    except CredentialResolutionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


def _plaid_client() -> PlaidClient:
    try:
        return PlaidClient.from_env()
    except PlaidClientError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


def _echo_json(data: dict[str, Any]) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.command("export")
def export_cmd(
    item_id: str | None = typer.Option(None, help="Plaid item to export"),
    export_format: str | None = typer.Option(
        None, "--format", help="Override EXPORT_FORMAT: csv, xlsx or sheets"
    ),
    upload: bool = typer.Option(
        False, help="Upload the export file to Cloudflare R2 afterwards"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Sync new transactions and append them to the export target."""
    _configure_logging(verbose)
    config = _load_config(export_format)
    db = _open_db(config)
    credential = _resolve(db, item_id)

    try:
        target = create_export_target(config=config)
    except (ExportTargetError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    reconciler = SyncReconciler(
        PlaidTransactionSource(_plaid_client()), page_size=config.page_size
    )
    runner = ExportRunner(
        reconciler,
        create_cursor_store(config=config, db=db),
        target,
        on_run_complete=lambda cred, finished_at: db.touch_last_synced(
            cred.key, finished_at
        ),
    )
    result = runner.run_export(
        credential,
        ExportOptions(
            account_ids=config.account_ids,
            lookback_days_if_first_run=config.lookback_days,
        ),
    )
    summary = result.to_dict()

    if upload and result.status != "error" and config.export_format != "sheets":
        path = getattr(target, "path", None)
        try:
            stored = upload_export_file(path)
        except R2StorageError as e:
            typer.echo(f"Error: {e}", err=True)
            _echo_json(summary)
            raise typer.Exit(code=1) from e
        summary["uploaded_key"] = stored.key

    _echo_json(summary)
    if result.status == "error":
        raise typer.Exit(code=1)


@app.command("fetch")
def fetch_cmd(
    start_date: datetime = typer.Option(  # noqa: B008
        ..., "--start", formats=["%Y-%m-%d"], help="First day (YYYY-MM-DD)"
    ),
    end_date: datetime = typer.Option(  # noqa: B008
        ..., "--end", formats=["%Y-%m-%d"], help="Last day (YYYY-MM-DD)"
    ),
    item_id: str | None = typer.Option(None, help="Plaid item to fetch"),
    export_format: str = typer.Option(
        "csv", "--format", help="Output format: csv or xlsx"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Export every transaction in a date window to a dated file.

    Does not read or move the sync cursor.
    """
    _configure_logging(verbose)
    if export_format not in {"csv", "xlsx"}:
        raise typer.BadParameter("--format must be csv or xlsx")
    config = _load_config(export_format)
    db = _open_db(config)
    credential = _resolve(db, item_id)

    start: date = start_date.date()
    end: date = end_date.date()
    fetcher = PaginatedFetcher(PlaidTransactionSource(_plaid_client()))
    target = create_export_target(
        config=config, file_stem=f"transactions_{start}_{end}"
    )
    try:
        transactions = fetcher.fetch(
            credential,
            start_date=start,
            end_date=end,
            account_ids=config.account_ids,
            page_size=config.page_size,
        )
        outcome = DedupSinkWriter().append_new(target, normalize(transactions))
    except (SyncError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    _echo_json(
        {
            "fetched": len(transactions),
            "written": outcome.written,
            "skipped": outcome.skipped,
            "target": target.name,
        }
    )


@cursor_app.command("show")
def cursor_show(
    item_id: str | None = typer.Option(None, help="Plaid item"),
) -> None:
    """Print the stored cursor for an item."""
    config = _load_config(None)
    db = _open_db(config)
    credential = _resolve(db, item_id)
    cursor = create_cursor_store(config=config, db=db).load(credential)
    _echo_json({"item_id": credential.key, "cursor": cursor})


@cursor_app.command("reset")
def cursor_reset(
    item_id: str | None = typer.Option(None, help="Plaid item"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
) -> None:
    """Forget the stored cursor so the next export starts from the beginning."""
    config = _load_config(None)
    db = _open_db(config)
    credential = _resolve(db, item_id)
    if not yes:
        typer.confirm(
            f"Reset the cursor for {credential.key}? The next export re-fetches "
            "the full history.",
            abort=True,
        )
    create_cursor_store(config=config, db=db).reset(credential)
    typer.echo(f"Cursor reset for {credential.key}")


@item_app.command("add")
def item_add(
    item_id: str = typer.Option(..., help="Plaid item ID"),
    access_token: str = typer.Option(..., help="Plaid access token for the item"),
    lookup: bool = typer.Option(
        True, help="Look up the institution name from Plaid"
    ),
) -> None:
    """Store (or update) a Plaid item and its access token."""
    config = _load_config(None)
    db = _open_db(config)

    institution_id: str | None = None
    institution_name: str | None = None
    if lookup:
        try:
            info = _plaid_client().get_item_info(access_token)
        except PlaidClientError as e:
            typer.echo(f"Warning: could not look up institution: {e}", err=True)
        else:
            institution_id = info["institution_id"]
            institution_name = info["institution_name"]

    item = db.save_plaid_item(
        item_id=item_id,
        access_token=access_token,
        institution_id=institution_id,
        institution_name=institution_name,
    )
    typer.echo(f"Saved item {item.item_id} ({item.institution_name or 'unknown'})")


@item_app.command("list")
def item_list() -> None:
    """List stored Plaid items with their sync state."""
    config = _load_config(None)
    db = _open_db(config)
    _echo_json(
        {
            "items": [
                {
                    "item_id": item.item_id,
                    "institution_name": item.institution_name,
                    "has_cursor": bool(item.sync_cursor),
                    "last_synced_at": item.last_synced_at,
                }
                for item in db.list_plaid_items()
            ]
        }
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
