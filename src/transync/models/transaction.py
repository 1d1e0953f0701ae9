from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
from decimal import Decimal
from typing import Any, Literal, Self, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PersonalFinanceCategory(TypedDict):
    """Personal finance category information from Plaid."""

    confidence_level: str  # e.g., "HIGH", "VERY_HIGH"
    detailed: str  # e.g., "FOOD_AND_DRINK_GROCERIES"
    primary: str  # e.g., "FOOD_AND_DRINK"


class Transaction(TypedDict):
    """
    Transaction as returned by Plaid's /transactions/sync and /transactions/get.

    Note: This structure mirrors what Plaid's API returns. Any field may be
    missing or null in practice; shape is validated once, by the normalizer.
    """

    transaction_id: str | None
    account_id: str | None
    amount: float | None
    iso_currency_code: str | None
    unofficial_currency_code: str | None
    date: str | None
    name: str
    merchant_name: str | None
    pending: bool
    payment_channel: str | None
    category: list[str] | None  # e.g., ["Food and Drink", "Groceries"]
    personal_finance_category: PersonalFinanceCategory | None


Status = Literal["pending", "posted"]

# Export column order. The last column carries the dedup key.
ROW_COLUMNS: tuple[str, ...] = (
    "Date",
    "Account",
    "Description",
    "Amount",
    "Category",
    "Merchant",
    "Status",
    "Currency",
    "Transaction ID",
)
DEDUP_KEY_COLUMN = "Transaction ID"


class TransactionRecord(BaseModel):
    """Strict view of an upstream transaction.

    Every optional upstream field has an explicit empty form here so that
    code downstream of validation never branches on shape.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    transaction_id: str = Field(min_length=1)
    account_id: str = Field(min_length=1)
    date: dt.date
    name: str
    amount: Decimal
    currency: str = ""
    category: tuple[str, ...] = ()
    merchant_name: str | None = None
    pending: bool = False

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_from_float(cls, value: Any) -> Any:
        # Decimal(float) would carry binary noise into the export.
        if isinstance(value, float):
            return Decimal(repr(value))
        return value

    @classmethod
    def from_transaction(cls, txn: Transaction | dict[str, Any]) -> Self:
        """Validate a raw Plaid transaction.

        Raises:
            pydantic.ValidationError: If a required field is missing or malformed
        """
        currency = txn.get("iso_currency_code") or txn.get(
            "unofficial_currency_code"
        )
        return cls.model_validate(
            {
                "transaction_id": txn.get("transaction_id"),
                "account_id": txn.get("account_id"),
                "date": txn.get("date"),
                "name": txn.get("name") or "",
                "amount": txn.get("amount"),
                "currency": currency or "",
                "category": _category_labels(txn),
                "merchant_name": txn.get("merchant_name") or None,
                "pending": bool(txn.get("pending", False)),
            }
        )


def _category_labels(txn: Transaction | dict[str, Any]) -> list[str]:
    legacy = txn.get("category")
    if legacy:
        return [label for label in legacy if label]
    pfc = txn.get("personal_finance_category")
    if pfc:
        return [label for label in (pfc.get("primary"), pfc.get("detailed")) if label]
    return []


@dataclass(frozen=True, slots=True)
class NormalizedRow:
    """Export-ready projection of a TransactionRecord."""

    transaction_id: str
    account_id: str
    date: str  # ISO 8601 calendar date
    description: str
    amount: Decimal  # positive = outflow, as reported upstream
    currency: str
    category: str
    merchant: str | None
    status: Status

    def to_cells(self) -> dict[str, str]:
        """Render the row as column name -> cell text."""
        return {
            "Date": self.date,
            "Account": self.account_id,
            "Description": self.description,
            "Amount": str(self.amount),
            "Category": self.category,
            "Merchant": self.merchant or "",
            "Status": self.status,
            "Currency": self.currency,
            "Transaction ID": self.transaction_id,
        }
