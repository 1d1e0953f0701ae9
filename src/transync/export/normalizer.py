"""Map upstream transactions onto the flat export row schema.

Pure functions: no I/O, no financial semantics. Amount sign and currency are
passed through as reported upstream.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from transync.models.transaction import NormalizedRow, Transaction, TransactionRecord
from transync.sync.errors import NormalizationError

CATEGORY_SEPARATOR = " / "


def normalize(records: Iterable[Transaction | dict[str, Any]]) -> list[NormalizedRow]:
    """
    Validate and project records into export rows, preserving order.

    Args:
        records: Raw upstream transactions

    Returns:
        One NormalizedRow per record

    Raises:
        NormalizationError: If any record lacks a required field; no rows are
            returned for the batch in that case
    """
    return [normalize_record(record) for record in records]


def normalize_record(record: Transaction | dict[str, Any]) -> NormalizedRow:
    """Validate and project a single upstream transaction."""
    try:
        validated = TransactionRecord.from_transaction(record)
    except ValidationError as e:
        transaction_id = record.get("transaction_id")
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) for err in e.errors()
        )
        raise NormalizationError(
            f"Transaction {transaction_id or '<no id>'} cannot be exported; "
            f"invalid field(s): {fields}",
            transaction_id=transaction_id,
        ) from e
    return to_row(validated)


def to_row(record: TransactionRecord) -> NormalizedRow:
    return NormalizedRow(
        transaction_id=record.transaction_id,
        account_id=record.account_id,
        date=record.date.isoformat(),
        description=record.name,
        amount=record.amount,
        currency=record.currency,
        category=CATEGORY_SEPARATOR.join(record.category),
        merchant=record.merchant_name,
        status="pending" if record.pending else "posted",
    )
