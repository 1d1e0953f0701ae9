from __future__ import annotations

from collections.abc import Sequence
from datetime import date

import loguru
from loguru import logger

from transync.models.transaction import Transaction
from transync.sync.protocol import Credential, TransactionSource

MAX_PAGE_SIZE = 500


class FetcherLogger:
    """Handles all logging for PaginatedFetcher."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def fetch_start(self, start_date: date, end_date: date) -> None:
        self._logger.bind(start=str(start_date), end=str(end_date)).info(
            "Fetching transactions from {} to {}", start_date, end_date
        )

    def page_complete(self, fetched: int, total: int) -> None:
        self._logger.bind(fetched=fetched, total=total).info(
            "Fetched {}/{} transactions...", fetched, total
        )

    def short_read(self, fetched: int, total: int) -> None:
        self._logger.bind(fetched=fetched, total=total).warning(
            "Upstream returned an empty page at {}/{}; stopping", fetched, total
        )


class PaginatedFetcher:
    """One-shot pull of every transaction in a closed date window.

    The total is read once from the first page; the loop ends when the
    cumulative count reaches it. Any page failure propagates and no partial
    result is returned.
    """

    def __init__(self, source: TransactionSource) -> None:
        self._source = source
        self._logger = FetcherLogger()

    def fetch(
        self,
        credential: Credential,
        *,
        start_date: date,
        end_date: date,
        account_ids: Sequence[str] | None = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> list[Transaction]:
        """
        Fetch all transactions dated within [start_date, end_date].

        Args:
            credential: Item to fetch for
            start_date: First day of the window (inclusive)
            end_date: Last day of the window (inclusive)
            account_ids: Restrict to these accounts; empty or None means all
            page_size: Transactions per request (1-500)

        Returns:
            Transactions in upstream order

        Raises:
            TransientFetchError: If any page request fails
            ValueError: If the window or page size is invalid
        """
        if end_date < start_date:
            raise ValueError(f"end_date {end_date} is before start_date {start_date}")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be within 1..{MAX_PAGE_SIZE}")

        accounts = list(account_ids) if account_ids else None
        self._logger.fetch_start(start_date, end_date)

        first = self._source.get(
            credential,
            start_date=start_date,
            end_date=end_date,
            offset=0,
            page_size=page_size,
            account_ids=accounts,
        )
        total = first.total_transactions
        transactions: list[Transaction] = list(first.transactions)
        self._logger.page_complete(len(transactions), total)

        while len(transactions) < total:
            page = self._source.get(
                credential,
                start_date=start_date,
                end_date=end_date,
                offset=len(transactions),
                page_size=page_size,
                account_ids=accounts,
            )
            if not page.transactions:
                self._logger.short_read(len(transactions), total)
                break
            transactions.extend(page.transactions)
            self._logger.page_complete(len(transactions), total)

        return transactions
