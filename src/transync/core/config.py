from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Literal

ExportFormat = Literal["csv", "xlsx", "sheets"]
CursorBackend = Literal["file", "db"]

MAX_PAGE_SIZE = 500


@dataclass(frozen=True, slots=True)
class ExportConfig:
    """Export settings loaded at process startup."""

    export_format: ExportFormat = "xlsx"
    export_dir: Path = Path("./exports")
    account_ids: tuple[str, ...] = ()
    lookback_days: int = 30
    page_size: int = MAX_PAGE_SIZE
    database_url: str = "sqlite:///transync.db"
    cursor_backend: CursorBackend = "file"
    cursor_dir: Path = Path("./.transync")
    plaid_env: str = "sandbox"
    sheet_id: str | None = None
    sheet_tab: str = "Transactions"
    service_account_json: str | None = None
    service_account_file: str | None = None


def _int_env(name: str, default: int, *, minimum: int, maximum: int | None) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum or (maximum is not None and value > maximum):
        upper = "" if maximum is None else f"..{maximum}"
        raise ValueError(f"{name} must be within {minimum}{upper}, got {value}")
    return value


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def load_export_config_from_env() -> ExportConfig:
    """Load export config from env and validate it."""
    export_format = os.environ.get("EXPORT_FORMAT", "xlsx").strip().lower()
    if export_format not in {"csv", "xlsx", "sheets"}:
        raise ValueError("EXPORT_FORMAT must be one of: csv, xlsx, sheets")

    cursor_backend = os.environ.get("TRANSYNC_CURSOR_BACKEND", "file").strip().lower()
    if cursor_backend not in {"file", "db"}:
        raise ValueError("TRANSYNC_CURSOR_BACKEND must be one of: file, db")

    account_ids = tuple(
        part.strip()
        for part in os.environ.get("EXPORT_ACCOUNT_IDS", "").split(",")
        if part.strip()
    )

    sheet_id = _optional_env("GOOGLE_SHEET_ID")
    service_account_json = _optional_env("GCP_SA_JSON")
    service_account_file = _optional_env("GOOGLE_APPLICATION_CREDENTIALS")
    if export_format == "sheets":
        # Fail fast on missing sink settings.
        if not sheet_id:
            raise ValueError("GOOGLE_SHEET_ID is required when EXPORT_FORMAT=sheets")
        if not (service_account_json or service_account_file):
            raise ValueError(
                "GCP_SA_JSON or GOOGLE_APPLICATION_CREDENTIALS is required "
                "when EXPORT_FORMAT=sheets"
            )

    return ExportConfig(
        export_format=export_format,  # type: ignore[arg-type]
        export_dir=Path(os.environ.get("EXPORT_DIR", "./exports").strip()),
        account_ids=account_ids,
        lookback_days=_int_env("EXPORT_START_DAYS", 30, minimum=1, maximum=None),
        page_size=_int_env(
            "EXPORT_PAGE_SIZE", MAX_PAGE_SIZE, minimum=1, maximum=MAX_PAGE_SIZE
        ),
        database_url=os.environ.get(
            "TRANSYNC_DATABASE_URL", "sqlite:///transync.db"
        ).strip(),
        cursor_backend=cursor_backend,  # type: ignore[arg-type]
        cursor_dir=Path(os.environ.get("TRANSYNC_CURSOR_DIR", "./.transync").strip()),
        plaid_env=os.environ.get("PLAID_ENV", "sandbox").strip().lower(),
        sheet_id=sheet_id,
        sheet_tab=os.environ.get("GOOGLE_SHEET_TAB", "Transactions").strip()
        or "Transactions",
        service_account_json=service_account_json,
        service_account_file=service_account_file,
    )
