"""Plaid as a TransactionSource: response shaping and error translation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from pydantic import ValidationError

from transync.adapters.clients.plaid import PlaidApiError, PlaidClient, PlaidClientError
from transync.sync.errors import (
    SyncError,
    SyncMutationError,
    SyncUnsupportedError,
    TransientFetchError,
)
from transync.sync.protocol import Credential, SyncPage, TransactionsPage

# Plaid error codes meaning the item has no usable /transactions/sync state.
SYNC_UNSUPPORTED_CODES = frozenset(
    {
        "PRODUCTS_NOT_SUPPORTED",
        "PRODUCT_NOT_READY",
        "INVALID_PRODUCT",
        "ADDITIONAL_CONSENT_REQUIRED",
    }
)
MUTATION_DURING_PAGINATION = "TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"


def translate_error(error: Exception, *, operation: str) -> SyncError:
    """Map a Plaid client failure onto the sync error taxonomy."""
    if isinstance(error, PlaidApiError):
        if error.error_code == MUTATION_DURING_PAGINATION:
            return SyncMutationError(f"{operation}: {error}")
        if operation == "sync" and error.error_code in SYNC_UNSUPPORTED_CODES:
            return SyncUnsupportedError(f"{operation}: {error}")
    return TransientFetchError(f"{operation} failed: {error}")


class PlaidTransactionSource:
    """Adapts PlaidClient to the TransactionSource protocol."""

    def __init__(self, client: PlaidClient) -> None:
        self._client = client

    def sync(
        self,
        credential: Credential,
        *,
        cursor: str | None = None,
        count: int = 500,
    ) -> SyncPage:
        try:
            result = self._client.sync_transactions(
                credential.access_token, cursor=cursor, count=count
            )
        except (PlaidClientError, ValidationError) as e:
            raise translate_error(e, operation="sync") from e

        return SyncPage(
            added=result["added"],
            modified=result["modified"],
            removed=result["removed"],
            has_more=result["has_more"],
            next_cursor=result["next_cursor"],
        )

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
        try:
            transactions, total = self._client.list_transactions(
                credential.access_token,
                start_date=start_date,
                end_date=end_date,
                account_ids=list(account_ids) if account_ids else None,
                offset=offset,
                limit=page_size,
            )
        except (PlaidClientError, ValidationError) as e:
            raise translate_error(e, operation="get") from e

        return TransactionsPage(transactions=transactions, total_transactions=total)
