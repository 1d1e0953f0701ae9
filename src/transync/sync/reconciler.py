from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta

import loguru
from loguru import logger

from transync.models.transaction import Transaction
from transync.sync.errors import (
    SyncError,
    SyncMutationError,
    SyncUnsupportedError,
    TransientFetchError,
)
from transync.sync.fetcher import PaginatedFetcher
from transync.sync.protocol import Credential, TransactionSource


@dataclass
class SyncOutcome:
    """Everything a fully drained synchronization produced.

    ``final_cursor`` is None only when the run fell back to a dated fetch and
    incremental sync could not be initialized afterwards.
    """

    added: list[Transaction]
    modified: list[Transaction]
    removed: list[str]
    final_cursor: str | None
    pages_fetched: int
    used_fallback: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)


class SyncReconcilerLogger:
    """Handles all logging for SyncReconciler with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def fetch_start(self, cursor: str | None, page_num: int) -> None:
        """Log start of page fetch."""
        cursor_label = _cursor_label(cursor)
        self._logger.bind(cursor=cursor_label, page=page_num).info(
            "Fetching changes (cursor: {}, page {})", cursor_label, page_num
        )

    def fetch_complete(
        self, added_count: int, modified_count: int, removed_count: int, page_num: int
    ) -> None:
        """Log completion of page fetch."""
        self._logger.bind(
            added=added_count,
            modified=modified_count,
            removed=removed_count,
            page=page_num,
        ).info(
            "Fetched {} added, {} modified, {} removed (page {})",
            added_count,
            modified_count,
            removed_count,
            page_num,
        )

    def drain_summary(
        self,
        total_added: int,
        total_modified: int,
        total_removed: int,
        total_pages: int,
    ) -> None:
        """Log summary of a drained sync."""
        self._logger.bind(
            total_added=total_added,
            total_modified=total_modified,
            total_removed=total_removed,
            pages=total_pages,
        ).info(
            "Drained: {} added, {} modified, {} removed across {} pages",
            total_added,
            total_modified,
            total_removed,
            total_pages,
        )

    def mutation_retry(self, attempt: int, max_retries: int) -> None:
        """Log mutation error retry attempt."""
        self._logger.bind(attempt=attempt, max_retries=max_retries).warning(
            "Mutation detected, restarting drain (attempt {}/{})",
            attempt,
            max_retries,
        )

    def fallback_start(self, start_date: date, end_date: date, reason: str) -> None:
        """Log switch to the dated fetch path."""
        self._logger.bind(start=str(start_date), end=str(end_date)).warning(
            "Incremental sync unavailable ({}); fetching {} to {} instead",
            reason,
            start_date,
            end_date,
        )

    def fallback_init_start(self) -> None:
        self._logger.info("Initializing incremental sync for future runs")

    def fallback_init_failed(self, error: SyncError) -> None:
        """Log failed sync initialization after a fallback fetch."""
        self._logger.bind(kind=error.kind).warning(
            "Could not initialize incremental sync cursor: {}", error
        )


def _cursor_label(cursor: str | None) -> str:
    if not cursor:
        return "initial"
    return cursor[:8] + "..." if len(cursor) > 8 else cursor


class SyncReconciler:
    """Drains an upstream change stream from a cursor.

    The reconciler never persists anything: it returns the accumulated
    changes and the cursor to checkpoint, and the caller decides when to
    checkpoint relative to writing the export.
    """

    def __init__(
        self,
        source: TransactionSource,
        *,
        fetcher: PaginatedFetcher | None = None,
        page_size: int = 500,
        max_mutation_retries: int = 3,
        today: Callable[[], date] = date.today,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            source: Upstream source for sync and dated fetches
            fetcher: Fetcher for the fallback path (built from source if None)
            page_size: Maximum records per sync page (1-500)
            max_mutation_retries: Drain restarts allowed when upstream data
                changes mid-pagination
            today: Clock for the fallback lookback window
        """
        self._source = source
        self._fetcher = fetcher or PaginatedFetcher(source)
        self._page_size = page_size
        self._max_mutation_retries = max_mutation_retries
        self._today = today
        self._logger = SyncReconcilerLogger()

    def synchronize(
        self,
        credential: Credential,
        cursor: str | None,
        *,
        lookback_days: int = 30,
        account_ids: Sequence[str] | None = None,
    ) -> SyncOutcome:
        """
        Fetch every change since ``cursor``.

        Falls back to a dated fetch over the last ``lookback_days`` days when
        upstream reports that incremental sync is unavailable, then tries once
        to obtain a fresh cursor so later runs can sync incrementally.

        Args:
            credential: Item to synchronize
            cursor: Last checkpointed cursor, None for the beginning of stream
            lookback_days: Window size for the fallback fetch
            account_ids: Account filter applied by the fallback fetch

        Returns:
            SyncOutcome with accumulated changes and the cursor to checkpoint

        Raises:
            TransientFetchError: If any request fails outside the
                fallback initialization step
        """
        try:
            return self.drain(credential, cursor)
        except SyncUnsupportedError as e:
            return self._fallback(
                credential,
                reason=str(e),
                lookback_days=lookback_days,
                account_ids=account_ids,
            )

    def drain(self, credential: Credential, cursor: str | None) -> SyncOutcome:
        """
        Call sync until upstream reports no more pages.

        Page order and within-page order are preserved in the accumulated
        sequences. When upstream reports a mutation during pagination the
        accumulators are cleared and the drain restarts from ``cursor``.

        Raises:
            SyncUnsupportedError: If upstream has no sync state for the item
            TransientFetchError: If a request fails, or mutation retries run out
        """
        retry_count = 0
        while True:
            try:
                return self._drain_once(credential, cursor)
            except SyncMutationError as e:
                if retry_count >= self._max_mutation_retries:
                    raise TransientFetchError(
                        f"Failed to sync after {self._max_mutation_retries} "
                        "retries due to mutation during pagination"
                    ) from e
                retry_count += 1
                self._logger.mutation_retry(retry_count, self._max_mutation_retries)

    def _drain_once(self, credential: Credential, cursor: str | None) -> SyncOutcome:
        current_cursor = cursor

        added_all: list[Transaction] = []
        modified_all: list[Transaction] = []
        removed_all: list[str] = []
        pages_fetched = 0

        while True:
            self._logger.fetch_start(current_cursor, pages_fetched + 1)
            page = self._source.sync(
                credential, cursor=current_cursor, count=self._page_size
            )

            added_all.extend(page.added)
            modified_all.extend(page.modified)
            removed_all.extend(page.removed)
            pages_fetched += 1
            current_cursor = page.next_cursor

            self._logger.fetch_complete(
                len(page.added), len(page.modified), len(page.removed), pages_fetched
            )

            if not page.has_more:
                break

        self._logger.drain_summary(
            len(added_all), len(modified_all), len(removed_all), pages_fetched
        )
        return SyncOutcome(
            added=added_all,
            modified=modified_all,
            removed=removed_all,
            final_cursor=current_cursor,
            pages_fetched=pages_fetched,
        )

    def _fallback(
        self,
        credential: Credential,
        *,
        reason: str,
        lookback_days: int,
        account_ids: Sequence[str] | None,
    ) -> SyncOutcome:
        end_date = self._today()
        start_date = end_date - timedelta(days=lookback_days)
        self._logger.fallback_start(start_date, end_date, reason)

        transactions = self._fetcher.fetch(
            credential,
            start_date=start_date,
            end_date=end_date,
            account_ids=account_ids,
        )

        # The records of the initialization drain are discarded; only its
        # cursor is kept.
        self._logger.fallback_init_start()
        final_cursor: str | None
        try:
            final_cursor = self.drain(credential, None).final_cursor
        except SyncError as e:
            self._logger.fallback_init_failed(e)
            final_cursor = None

        return SyncOutcome(
            added=transactions,
            modified=[],
            removed=[],
            final_cursor=final_cursor,
            pages_fetched=0,
            used_fallback=True,
        )
