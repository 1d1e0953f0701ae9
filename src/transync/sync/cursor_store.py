"""Single-slot cursor persistence.

A slot is overwritten on every save, never appended to. ``save`` reports
failure through its return value; the caller turns that into a
``CursorPersistError`` so a lost checkpoint is never silent.
"""

from __future__ import annotations

from datetime import UTC, datetime
import json
import os
from pathlib import Path
import re
import tempfile

import loguru
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from transync.adapters.db.facade import DB
from transync.sync.protocol import Credential

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class CursorStoreLogger:
    """Handles all logging for cursor stores."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def loaded(self, key: str, found: bool) -> None:
        self._logger.bind(item=key, found=found).info(
            "Loaded cursor for {}" if found else "No cursor for {}, starting fresh",
            key,
        )

    def unreadable(self, key: str, error: Exception) -> None:
        self._logger.bind(item=key).warning(
            "Could not read cursor for {}, starting fresh: {}", key, error
        )

    def saved(self, key: str) -> None:
        self._logger.bind(item=key).info("Cursor saved for {}", key)

    def save_failed(self, key: str, error: Exception | str) -> None:
        self._logger.bind(item=key).error(
            "Could not save cursor for {}: {}", key, error
        )


class FileCursorStore:
    """Cursor slots as JSON files, one per Plaid environment and item.

    Cursors from different environments are never interchangeable, so the
    environment is part of the file name.
    """

    def __init__(self, directory: str | Path, *, env: str = "sandbox") -> None:
        self._directory = Path(directory)
        self._env = env
        self._logger = CursorStoreLogger()

    def path_for(self, credential: Credential) -> Path:
        safe_key = _UNSAFE_CHARS.sub("_", credential.key)
        return self._directory / f"cursor-{self._env}-{safe_key}.json"

    def load(self, credential: Credential) -> str | None:
        path = self.path_for(credential)
        if not path.exists():
            self._logger.loaded(credential.key, found=False)
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            self._logger.unreadable(credential.key, e)
            return None

        cursor = data.get("cursor") if isinstance(data, dict) else None
        if not isinstance(cursor, str) or not cursor:
            self._logger.loaded(credential.key, found=False)
            return None
        self._logger.loaded(credential.key, found=True)
        return cursor

    def save(self, credential: Credential, cursor: str) -> bool:
        path = self.path_for(credential)
        payload = json.dumps(
            {"cursor": cursor, "updated_at": datetime.now(UTC).isoformat()},
            indent=2,
        )
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=path.name,
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            self._logger.save_failed(credential.key, e)
            return False

        self._logger.saved(credential.key)
        return True

    def reset(self, credential: Credential) -> None:
        """Delete the slot so the next run starts from the beginning."""
        self.path_for(credential).unlink(missing_ok=True)


class DbCursorStore:
    """Cursor slots in the ``plaid_items.sync_cursor`` column."""

    def __init__(self, db: DB) -> None:
        self._db = db
        self._logger = CursorStoreLogger()

    def load(self, credential: Credential) -> str | None:
        try:
            cursor = self._db.get_sync_cursor(credential.key)
        except SQLAlchemyError as e:
            self._logger.unreadable(credential.key, e)
            return None
        self._logger.loaded(credential.key, found=bool(cursor))
        return cursor or None

    def save(self, credential: Credential, cursor: str) -> bool:
        try:
            stored = self._db.set_sync_cursor(credential.key, cursor)
        except SQLAlchemyError as e:
            self._logger.save_failed(credential.key, e)
            return False
        if not stored:
            self._logger.save_failed(credential.key, "no such Plaid item")
            return False
        self._logger.saved(credential.key)
        return True

    def reset(self, credential: Credential) -> None:
        """Clear the slot so the next run starts from the beginning."""
        self._db.set_sync_cursor(credential.key, None)
