"""Scheduled/on-demand export job: drain, normalize, write, checkpoint."""

from __future__ import annotations

from transync.jobs.export.runner import (
    DEFAULT_RUN_LOCKS,
    ExportOptions,
    ExportResult,
    ExportRunner,
    RunLocks,
)

__all__ = [
    "DEFAULT_RUN_LOCKS",
    "ExportOptions",
    "ExportResult",
    "ExportRunner",
    "RunLocks",
]
