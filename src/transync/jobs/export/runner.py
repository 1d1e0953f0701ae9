"""Export runner: one synchronization run per call.

Ordering is fixed: drain, normalize, write to the target, and only then
checkpoint the cursor. A failure before the checkpoint leaves the previous
cursor in place, so the next run re-fetches instead of skipping records.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
import threading
import time
from typing import Any, Literal

import loguru
from loguru import logger

from transync.export.normalizer import normalize
from transync.export.writer import DedupSinkWriter
from transync.models.transaction import Transaction
from transync.sync.errors import (
    CursorPersistError,
    RunInProgressError,
    RunRisk,
    SyncError,
)
from transync.sync.protocol import CursorStore, Credential, ExportTarget
from transync.sync.reconciler import SyncOutcome, SyncReconciler

RunStatus = Literal["success", "no_changes", "error"]
RunCompleteHook = Callable[[Credential, datetime], Any]


@dataclass(frozen=True, slots=True)
class ExportOptions:
    account_ids: tuple[str, ...] = ()
    lookback_days_if_first_run: int = 30


@dataclass
class ExportResult:
    """Result of one export run."""

    status: RunStatus
    added_count: int = 0
    modified_count: int = 0
    removed_count: int = 0
    written_count: int = 0
    skipped_count: int = 0
    cursor_persisted: bool = False
    used_fallback: bool = False
    error: SyncError | None = None
    duration_seconds: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def error_kind(self) -> str | None:
        return self.error.kind if self.error else None

    @property
    def risk(self) -> RunRisk | None:
        return self.error.risk if self.error else None

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable summary."""
        return {
            "status": self.status,
            "added": self.added_count,
            "modified": self.modified_count,
            "removed": self.removed_count,
            "written": self.written_count,
            "skipped": self.skipped_count,
            "cursor_persisted": self.cursor_persisted,
            "used_fallback": self.used_fallback,
            "error": str(self.error) if self.error else None,
            "error_kind": self.error_kind,
            "risk": self.risk.value if self.risk else None,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class RunLocks:
    """Per-credential run locks for one process.

    Runs for different credentials proceed in parallel; a second run for a
    credential that is still running is refused rather than queued.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        if not lock.acquire(blocking=False):
            raise RunInProgressError(f"An export run for {key} is already in progress")
        try:
            yield
        finally:
            lock.release()


# Shared by every runner in the process unless one is given explicitly.
DEFAULT_RUN_LOCKS = RunLocks()


class ExportRunnerLogger:
    """Handles all logging for ExportRunner with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def run_start(self, key: str, target: str) -> None:
        self._logger.bind(item=key, target=target).info(
            "Starting export for {} into {}", key, target
        )

    def filtered(self, dropped_accounts: int, dropped_removed: int) -> None:
        if not dropped_accounts and not dropped_removed:
            return
        self._logger.bind(
            dropped_accounts=dropped_accounts, dropped_removed=dropped_removed
        ).info(
            "Dropped {} records of other accounts and {} removed later in the drain",
            dropped_accounts,
            dropped_removed,
        )

    def no_cursor(self, key: str) -> None:
        self._logger.bind(item=key).warning(
            "No cursor to checkpoint for {}; next run repeats the fallback fetch", key
        )

    def run_failed(self, key: str, error: SyncError) -> None:
        self._logger.bind(item=key, kind=error.kind, risk=error.risk.value).error(
            "Export for {} failed ({}, risk: {}): {}",
            key,
            error.kind,
            error.risk.value,
            error,
        )

    def run_complete(self, key: str, result: ExportResult) -> None:
        self._logger.bind(item=key, **result.to_dict()).info(
            "Export for {} finished: {} ({} written, {} skipped)",
            key,
            result.status,
            result.written_count,
            result.skipped_count,
        )

    def hook_failed(self, key: str, error: Exception) -> None:
        self._logger.bind(item=key).exception(
            "Post-run hook failed for {}: {}", key, error
        )


class ExportRunner:
    """Runs incremental exports of one credential's transactions into a target."""

    def __init__(
        self,
        reconciler: SyncReconciler,
        cursor_store: CursorStore,
        target: ExportTarget,
        *,
        writer: DedupSinkWriter | None = None,
        on_run_complete: RunCompleteHook | None = None,
        locks: RunLocks | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        """Initialize export runner.

        Args:
            reconciler: Drains upstream changes
            cursor_store: Durable cursor slot per credential
            target: Append-only sink for normalized rows
            writer: Dedup writer (default schema if None)
            on_run_complete: Called with (credential, finished_at) after every
                run that did not fail
            locks: Run lock registry; defaults to the process-wide registry
            clock: Source of the finished_at timestamp
        """
        self._reconciler = reconciler
        self._cursor_store = cursor_store
        self._target = target
        self._writer = writer or DedupSinkWriter()
        self._on_run_complete = on_run_complete
        self._locks = locks if locks is not None else DEFAULT_RUN_LOCKS
        self._clock = clock
        self._logger = ExportRunnerLogger()

    def run_export(
        self,
        credential: Credential,
        options: ExportOptions | None = None,
    ) -> ExportResult:
        """Synchronize, export new rows, then checkpoint the cursor.

        Never raises a SyncError; failures are reported in the result with
        their kind and risk.
        """
        options = options or ExportOptions()
        start = time.time()
        try:
            with self._locks.hold(credential.key):
                result = self._run(credential, options)
        except RunInProgressError as e:
            result = ExportResult(status="error", error=e)

        result.duration_seconds = time.time() - start
        if result.error is not None:
            self._logger.run_failed(credential.key, result.error)
            return result

        self._logger.run_complete(credential.key, result)
        self._notify_complete(credential)
        return result

    def _run(self, credential: Credential, options: ExportOptions) -> ExportResult:
        self._logger.run_start(credential.key, self._target.name)

        try:
            cursor = self._cursor_store.load(credential)
            outcome = self._reconciler.synchronize(
                credential,
                cursor,
                lookback_days=options.lookback_days_if_first_run,
                account_ids=options.account_ids,
            )
        except SyncError as e:
            return ExportResult(status="error", error=e)

        result = ExportResult(
            status="success" if outcome.has_changes else "no_changes",
            added_count=len(outcome.added),
            modified_count=len(outcome.modified),
            removed_count=len(outcome.removed),
            used_fallback=outcome.used_fallback,
            metadata={"pages_fetched": outcome.pages_fetched},
        )

        try:
            rows = normalize(self._local_view(outcome, options.account_ids))
            appended = self._writer.append_new(self._target, rows)
        except SyncError as e:
            result.status = "error"
            result.error = e
            return result
        result.written_count = appended.written
        result.skipped_count = appended.skipped

        final_cursor = outcome.final_cursor
        if not final_cursor:
            self._logger.no_cursor(credential.key)
        elif final_cursor == cursor:
            result.cursor_persisted = True
        elif self._cursor_store.save(credential, final_cursor):
            result.cursor_persisted = True
        else:
            result.status = "error"
            result.error = CursorPersistError(
                f"Rows were exported but the cursor for {credential.key} was not "
                "saved; the next run re-fetches these changes"
            )
        return result

    def _local_view(
        self, outcome: SyncOutcome, account_ids: Sequence[str]
    ) -> list[Transaction]:
        """Merge added and modified records into one row per transaction.

        A later version of a transaction replaces the earlier one in its
        first-seen position. Records of other accounts and ids removed in the
        same drain are dropped.
        """
        removed = set(outcome.removed)
        wanted = set(account_ids)
        records: list[Transaction] = []
        positions: dict[str, int] = {}
        dropped_accounts = 0
        dropped_removed = 0
        for record in [*outcome.added, *outcome.modified]:
            transaction_id = record.get("transaction_id")
            if wanted and record.get("account_id") not in wanted:
                dropped_accounts += 1
            elif transaction_id in removed:
                dropped_removed += 1
            elif transaction_id and transaction_id in positions:
                records[positions[transaction_id]] = record
            else:
                if transaction_id:
                    positions[transaction_id] = len(records)
                records.append(record)
        self._logger.filtered(dropped_accounts, dropped_removed)
        return records

    def _notify_complete(self, credential: Credential) -> None:
        if self._on_run_complete is None:
            return
        try:
            self._on_run_complete(credential, self._clock())
        except Exception as e:
            self._logger.hook_failed(credential.key, e)
