"""Error taxonomy for a sync/export run.

Each error states what an operator risks by ignoring it: ``DATA_LOSS`` means
records fetched this run were not exported and may need intervention,
``WASTED_WORK`` means a plain rerun is safe and at worst re-fetches.
"""

from __future__ import annotations

from enum import Enum


class RunRisk(Enum):
    DATA_LOSS = "data_loss"
    WASTED_WORK = "wasted_work"


class SyncError(Exception):
    """Base error for sync and export runs."""

    kind: str = "sync"
    risk: RunRisk = RunRisk.WASTED_WORK


class TransientFetchError(SyncError):
    """A page or sync request failed; the whole run may be retried."""

    kind = "transient_fetch"
    risk = RunRisk.WASTED_WORK


class SyncMutationError(TransientFetchError):
    """Upstream data changed while a drain was paginating."""

    kind = "sync_mutation"


class SyncUnsupportedError(SyncError):
    """The credential has no incremental sync state upstream yet."""

    kind = "sync_unsupported"
    risk = RunRisk.WASTED_WORK


class CursorPersistError(SyncError):
    """Export succeeded but the cursor checkpoint could not be written."""

    kind = "cursor_persist"
    risk = RunRisk.WASTED_WORK


class SinkWriteError(SyncError):
    """Rows could not be appended to the export target."""

    kind = "sink_write"
    risk = RunRisk.DATA_LOSS


class NormalizationError(SyncError):
    """An upstream record could not be mapped onto the row schema."""

    kind = "normalization"
    risk = RunRisk.DATA_LOSS

    def __init__(self, message: str, *, transaction_id: str | None = None) -> None:
        super().__init__(message)
        self.transaction_id = transaction_id


class RunInProgressError(SyncError):
    """Another run for the same credential has not finished."""

    kind = "run_in_progress"
    risk = RunRisk.WASTED_WORK
