"""Cloudflare R2 object storage adapter (S3-compatible via boto3)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import os
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class R2StorageError(Exception):
    """Base error for R2 storage operations."""


class R2ConfigError(R2StorageError):
    """Missing or invalid R2 configuration."""


class R2UploadError(R2StorageError):
    """Failed to upload an object to R2."""


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

_REQUIRED_ENV_VARS = (
    "R2_ACCOUNT_ID",
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
    "R2_BUCKET",
)

_CONTENT_TYPES = {
    ".csv": "text/csv; charset=utf-8",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


@dataclass(frozen=True, slots=True)
class R2Config:
    """Credentials and bucket info for Cloudflare R2."""

    account_id: str
    access_key_id: str
    secret_access_key: str
    bucket: str

    @property
    def endpoint_url(self) -> str:
        return f"https://{self.account_id}.r2.cloudflarestorage.com"


@dataclass(frozen=True, slots=True)
class R2StoredObject:
    """Metadata returned after a successful upload."""

    key: str
    bucket: str
    content_type: str


# ---------------------------------------------------------------------------
# Config loader
# ---------------------------------------------------------------------------


def load_r2_config_from_env() -> R2Config:
    """Load R2 configuration from environment variables.

    Required env vars: R2_ACCOUNT_ID, R2_ACCESS_KEY_ID,
    R2_SECRET_ACCESS_KEY, R2_BUCKET.

    Raises:
        R2ConfigError: If any required variable is missing.
    """
    missing = [var for var in _REQUIRED_ENV_VARS if not os.environ.get(var)]
    if missing:
        raise R2ConfigError(f"Missing required R2 env var(s): {', '.join(missing)}")

    return R2Config(
        account_id=os.environ["R2_ACCOUNT_ID"],
        access_key_id=os.environ["R2_ACCESS_KEY_ID"],
        secret_access_key=os.environ["R2_SECRET_ACCESS_KEY"],
        bucket=os.environ["R2_BUCKET"],
    )


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


def _build_client(config: R2Config) -> Any:
    """Create a boto3 S3 client configured for Cloudflare R2."""
    return boto3.client(
        "s3",
        endpoint_url=config.endpoint_url,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        region_name="auto",
    )


def upload_export_file(
    path: str | Path,
    *,
    key: str | None = None,
    config: R2Config | None = None,
) -> R2StoredObject:
    """Upload an export file to Cloudflare R2.

    Args:
        path: Local CSV or XLSX file.
        key: Object key; defaults to ``make_export_key(path.name)``.
        config: R2 credentials. Loaded from env if *None*.

    Returns:
        R2StoredObject with the stored key, bucket, and content type.

    Raises:
        R2ConfigError: If config cannot be loaded from env.
        R2UploadError: If the file cannot be read or the upload fails.
    """
    if config is None:
        config = load_r2_config_from_env()

    file_path = Path(path)
    object_key = key or make_export_key(file_name=file_path.name)
    content_type = _CONTENT_TYPES.get(
        file_path.suffix.lower(), "application/octet-stream"
    )

    try:
        body = file_path.read_bytes()
    except OSError as exc:
        raise R2UploadError(f"Cannot read {file_path}: {exc}") from exc

    client = _build_client(config)
    try:
        client.put_object(
            Bucket=config.bucket,
            Key=object_key,
            Body=body,
            ContentType=content_type,
        )
    except (BotoCoreError, ClientError) as exc:
        msg = f"Failed to upload {object_key!r} to {config.bucket}: {exc}"
        raise R2UploadError(msg) from exc

    logger.bind(key=object_key, bucket=config.bucket).info(
        "Uploaded export to R2: {}", object_key
    )
    return R2StoredObject(key=object_key, bucket=config.bucket, content_type=content_type)


# ---------------------------------------------------------------------------
# Key helpers
# ---------------------------------------------------------------------------


def make_export_key(*, file_name: str, timestamp: datetime | None = None) -> str:
    """Build an R2 object key for an export file.

    Format: ``exports/<ts>-<file_name>``

    Args:
        file_name: e.g. ``transactions.xlsx``.
        timestamp: UTC datetime; defaults to *now*.

    Returns:
        Formatted object key string.
    """
    if timestamp is None:
        timestamp = datetime.now(UTC)
    ts_str = timestamp.strftime("%Y%m%dT%H%M%SZ")
    return f"exports/{ts_str}-{file_name}"
