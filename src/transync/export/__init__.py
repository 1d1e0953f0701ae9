"""Row normalization and deduplicated export."""

from __future__ import annotations

from transync.export.normalizer import CATEGORY_SEPARATOR, normalize
from transync.export.writer import AppendOutcome, DedupSinkWriter

__all__ = [
    "AppendOutcome",
    "CATEGORY_SEPARATOR",
    "DedupSinkWriter",
    "normalize",
]
