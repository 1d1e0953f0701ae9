"""Tests for the Cloudflare R2 export upload adapter."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError
import pytest

from transync.adapters.storage.r2 import (
    R2Config,
    R2ConfigError,
    R2StoredObject,
    R2UploadError,
    load_r2_config_from_env,
    make_export_key,
    upload_export_file,
)

_FULL_ENV = {
    "R2_ACCOUNT_ID": "abc123",
    "R2_ACCESS_KEY_ID": "AKID",
    "R2_SECRET_ACCESS_KEY": "secret",
    "R2_BUCKET": "transync-exports",
}

_XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _make_config() -> R2Config:
    return R2Config(
        account_id="abc123",
        access_key_id="AKID",
        secret_access_key="secret",  # noqa: S106
        bucket="transync-exports",
    )


class TestLoadR2ConfigFromEnv:
    def test_success_with_all_env_vars(self, monkeypatch):
        for key, val in _FULL_ENV.items():
            monkeypatch.setenv(key, val)

        config = load_r2_config_from_env()

        assert config == _make_config()
        assert config.endpoint_url == "https://abc123.r2.cloudflarestorage.com"

    @pytest.mark.parametrize("missing_var", list(_FULL_ENV.keys()))
    def test_missing_required_var(self, monkeypatch, missing_var):
        for key, val in _FULL_ENV.items():
            if key != missing_var:
                monkeypatch.setenv(key, val)
            else:
                monkeypatch.delenv(key, raising=False)

        with pytest.raises(R2ConfigError, match=missing_var):
            load_r2_config_from_env()


class TestMakeExportKey:
    def test_key_format(self):
        ts = datetime(2026, 2, 10, 3, 38, 0, tzinfo=UTC)

        key = make_export_key(file_name="transactions.xlsx", timestamp=ts)

        assert key == "exports/20260210T033800Z-transactions.xlsx"

    def test_defaults_to_utc_now(self):
        key = make_export_key(file_name="transactions.csv")

        assert key.startswith("exports/")
        assert key.endswith("-transactions.csv")


class TestUploadExportFile:
    @patch("transync.adapters.storage.r2.boto3")
    def test_put_object_called_with_file_contents(self, mock_boto3, tmp_path: Path):
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client
        path = tmp_path / "transactions.xlsx"
        path.write_bytes(b"xlsx-bytes")

        result = upload_export_file(
            path, key="exports/test-transactions.xlsx", config=_make_config()
        )

        mock_boto3.client.assert_called_once_with(
            "s3",
            endpoint_url="https://abc123.r2.cloudflarestorage.com",
            aws_access_key_id="AKID",
            aws_secret_access_key="secret",  # noqa: S106
            region_name="auto",
        )
        mock_client.put_object.assert_called_once_with(
            Bucket="transync-exports",
            Key="exports/test-transactions.xlsx",
            Body=b"xlsx-bytes",
            ContentType=_XLSX_TYPE,
        )
        assert result == R2StoredObject(
            key="exports/test-transactions.xlsx",
            bucket="transync-exports",
            content_type=_XLSX_TYPE,
        )

    @patch("transync.adapters.storage.r2.boto3")
    def test_csv_content_type_and_default_key(self, mock_boto3, tmp_path: Path):
        mock_boto3.client.return_value = MagicMock()
        path = tmp_path / "transactions.csv"
        path.write_text("Date\n", encoding="utf-8")

        result = upload_export_file(path, config=_make_config())

        assert result.content_type == "text/csv; charset=utf-8"
        assert result.key.startswith("exports/")
        assert result.key.endswith("-transactions.csv")

    @patch("transync.adapters.storage.r2.boto3")
    def test_upload_error_wraps_client_error(self, mock_boto3, tmp_path: Path):
        mock_client = MagicMock()
        mock_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "forbidden"}},
            "PutObject",
        )
        mock_boto3.client.return_value = mock_client
        path = tmp_path / "transactions.csv"
        path.write_text("Date\n", encoding="utf-8")

        with pytest.raises(R2UploadError, match="Failed to upload"):
            upload_export_file(path, config=_make_config())

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(R2UploadError, match="Cannot read"):
            upload_export_file(tmp_path / "missing.csv", config=_make_config())

    @patch("transync.adapters.storage.r2.boto3")
    def test_loads_config_from_env_when_none(
        self, mock_boto3, monkeypatch, tmp_path: Path
    ):
        for key, val in _FULL_ENV.items():
            monkeypatch.setenv(key, val)
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client
        path = tmp_path / "transactions.csv"
        path.write_text("Date\n", encoding="utf-8")

        result = upload_export_file(path)

        assert result.bucket == "transync-exports"
        mock_client.put_object.assert_called_once()
