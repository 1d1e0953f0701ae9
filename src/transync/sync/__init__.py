"""Incremental sync core: fetch, drain, checkpoint."""

from __future__ import annotations

from transync.sync.errors import (
    CursorPersistError,
    NormalizationError,
    RunInProgressError,
    RunRisk,
    SinkWriteError,
    SyncError,
    SyncMutationError,
    SyncUnsupportedError,
    TransientFetchError,
)
from transync.sync.fetcher import PaginatedFetcher
from transync.sync.reconciler import SyncOutcome, SyncReconciler

__all__ = [
    "CursorPersistError",
    "NormalizationError",
    "PaginatedFetcher",
    "RunInProgressError",
    "RunRisk",
    "SinkWriteError",
    "SyncError",
    "SyncMutationError",
    "SyncOutcome",
    "SyncReconciler",
    "SyncUnsupportedError",
    "TransientFetchError",
]
