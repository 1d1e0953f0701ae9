from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import loguru
from loguru import logger

from transync.export.targets.base import ExportTargetError
from transync.models.transaction import DEDUP_KEY_COLUMN, ROW_COLUMNS, NormalizedRow
from transync.sync.errors import SinkWriteError
from transync.sync.protocol import ExportTarget


@dataclass(frozen=True, slots=True)
class AppendOutcome:
    written: int
    skipped: int


class SinkWriterLogger:
    """Handles all logging for DedupSinkWriter."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def existing_keys(self, target: str, count: int) -> None:
        self._logger.bind(target=target, existing=count).debug(
            "{} already holds {} keys", target, count
        )

    def nothing_new(self, target: str, skipped: int) -> None:
        self._logger.bind(target=target, skipped=skipped).info(
            "No new transactions for {} ({} already present)", target, skipped
        )

    def appended(self, target: str, written: int, skipped: int) -> None:
        self._logger.bind(target=target, written=written, skipped=skipped).info(
            "Appended {} new transactions to {} ({} skipped)", written, target, skipped
        )


class DedupSinkWriter:
    """Appends only rows whose dedup key is not already in the target.

    Writing the same rows twice is a no-op the second time, so export writes
    can be retried regardless of whether the cursor was checkpointed.
    """

    def __init__(
        self,
        *,
        columns: Sequence[str] = ROW_COLUMNS,
        key_column: str = DEDUP_KEY_COLUMN,
    ) -> None:
        if key_column not in columns:
            raise ValueError(f"Key column {key_column!r} is not in the schema")
        self._columns = list(columns)
        self._key_column = key_column
        self._logger = SinkWriterLogger()

    def append_new(
        self, target: ExportTarget, rows: Sequence[NormalizedRow]
    ) -> AppendOutcome:
        """
        Append rows whose key is absent from the target, in input order.

        Rows repeating a key seen earlier in the same call are skipped too.

        Args:
            target: Append-only sink
            rows: Normalized rows to export

        Returns:
            AppendOutcome with written and skipped counts

        Raises:
            SinkWriteError: If the target cannot be read or appended to, or its
                existing header row has no key column
        """
        try:
            headers = target.ensure_headers(self._columns)
            if self._key_column not in headers:
                raise SinkWriteError(
                    f"{target.name} has no {self._key_column!r} column; "
                    f"found headers {headers}"
                )
            existing = target.read_keys(self._key_column)
            self._logger.existing_keys(target.name, len(existing))

            seen = set(existing)
            to_write: list[list[str]] = []
            for row in rows:
                if row.transaction_id in seen:
                    continue
                seen.add(row.transaction_id)
                cells = row.to_cells()
                to_write.append([cells.get(header, "") for header in headers])

            skipped = len(rows) - len(to_write)
            if not to_write:
                self._logger.nothing_new(target.name, skipped)
                return AppendOutcome(written=0, skipped=skipped)

            target.append_rows(to_write)
        except ExportTargetError as e:
            raise SinkWriteError(f"Export to {target.name} failed: {e}") from e

        self._logger.appended(target.name, len(to_write), skipped)
        return AppendOutcome(written=len(to_write), skipped=skipped)
