"""Interfaces the sync core consumes: upstream source, cursor slot, row sink."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol, runtime_checkable

from transync.models.transaction import Transaction


@dataclass(frozen=True, slots=True)
class Credential:
    """Access to one upstream item.

    ``key`` scopes durable state (cursor slot, run lock) and is safe to log;
    ``access_token`` is passed to the source only.
    """

    key: str
    access_token: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class SyncPage:
    """One /transactions/sync response."""

    added: list[Transaction]
    modified: list[Transaction]
    removed: list[str]
    has_more: bool
    next_cursor: str


@dataclass(frozen=True, slots=True)
class TransactionsPage:
    """One /transactions/get response."""

    transactions: list[Transaction]
    total_transactions: int


@runtime_checkable
class TransactionSource(Protocol):
    """Upstream data source with a sync protocol and a paginated get.

    Implementations raise the errors in ``transync.sync.errors``:
    ``SyncUnsupportedError`` when the credential has no incremental sync
    state, ``TransientFetchError`` for every other request failure.
    """

    def sync(
        self,
        credential: Credential,
        *,
        cursor: str | None = None,
        count: int = 500,
    ) -> SyncPage:
        """Fetch one page of changes; ``cursor=None`` means beginning of stream."""
        ...

    def get(
        self,
        credential: Credential,
        *,
        start_date: date,
        end_date: date,
        offset: int,
        page_size: int,
        account_ids: Sequence[str] | None = None,
    ) -> TransactionsPage:
        """Fetch one page of transactions dated within [start_date, end_date]."""
        ...


@runtime_checkable
class CursorStore(Protocol):
    """Durable single-slot cursor per credential."""

    def load(self, credential: Credential) -> str | None:
        """Return the last checkpointed cursor, or None before the first save."""
        ...

    def save(self, credential: Credential, cursor: str) -> bool:
        """Overwrite the slot. Returns False when the write did not happen."""
        ...


@runtime_checkable
class ExportTarget(Protocol):
    """Append-only row sink with a header row and a dedup-key column.

    Implementations raise ``ExportTargetError`` on I/O failure.
    """

    @property
    def name(self) -> str:
        """Human-readable location, for logs."""
        ...

    def ensure_headers(self, headers: Sequence[str]) -> list[str]:
        """Write ``headers`` if the target is empty; return the header row in use."""
        ...

    def read_keys(self, column: str) -> set[str]:
        """Return every non-empty value already present in ``column``."""
        ...

    def append_rows(self, rows: Sequence[Sequence[str]]) -> None:
        """Append rows after the existing data in one operation."""
        ...
