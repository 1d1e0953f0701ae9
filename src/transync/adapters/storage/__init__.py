"""Object storage adapters."""

from __future__ import annotations

from transync.adapters.storage.r2 import (
    R2Config,
    R2ConfigError,
    R2StorageError,
    R2StoredObject,
    R2UploadError,
    load_r2_config_from_env,
    make_export_key,
    upload_export_file,
)

__all__ = [
    "R2Config",
    "R2ConfigError",
    "R2StorageError",
    "R2StoredObject",
    "R2UploadError",
    "load_r2_config_from_env",
    "make_export_key",
    "upload_export_file",
]
