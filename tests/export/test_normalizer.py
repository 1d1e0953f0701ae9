from __future__ import annotations

from decimal import Decimal

import pytest

from tests.fixtures.sync_fakes import create_test_transaction, create_test_transactions
from transync.export.normalizer import normalize
from transync.models.transaction import NormalizedRow
from transync.sync.errors import NormalizationError, RunRisk


def test_maps_all_fields() -> None:
    txn = create_test_transaction(
        transaction_id="txn_1",
        account_id="acc_9",
        amount=42.5,
        date="2025-02-03",
        name="WHOLE FOODS #123",
        category=["Shops", "Supermarkets and Groceries"],
        merchant_name="Whole Foods",
        pending=True,
        iso_currency_code="USD",
    )

    (row,) = normalize([txn])

    assert row == NormalizedRow(
        transaction_id="txn_1",
        account_id="acc_9",
        date="2025-02-03",
        description="WHOLE FOODS #123",
        amount=Decimal("42.5"),
        currency="USD",
        category="Shops / Supermarkets and Groceries",
        merchant="Whole Foods",
        status="pending",
    )


def test_is_deterministic() -> None:
    records = create_test_transactions(5)

    first = [row.to_cells() for row in normalize(records)]
    second = [row.to_cells() for row in normalize(records)]

    assert first == second


def test_does_not_mutate_input() -> None:
    txn = create_test_transaction(category=["Travel"])
    snapshot = dict(txn)

    normalize([txn])

    assert txn == snapshot


@pytest.mark.parametrize("category", [None, []])
def test_missing_category_is_empty_string(category) -> None:
    (row,) = normalize([create_test_transaction(category=category)])

    assert row.category == ""
    assert row.to_cells()["Category"] == ""


def test_personal_finance_category_used_when_legacy_absent() -> None:
    txn = create_test_transaction(category=None)
    txn["personal_finance_category"] = {
        "primary": "FOOD_AND_DRINK",
        "detailed": "FOOD_AND_DRINK_GROCERIES",
        "confidence_level": "HIGH",
    }

    (row,) = normalize([txn])

    assert row.category == "FOOD_AND_DRINK / FOOD_AND_DRINK_GROCERIES"


def test_missing_merchant_is_none_not_placeholder() -> None:
    (row,) = normalize([create_test_transaction(merchant_name=None)])

    assert row.merchant is None
    assert row.to_cells()["Merchant"] == ""


@pytest.mark.parametrize(("pending", "status"), [(True, "pending"), (False, "posted")])
def test_status_comes_from_pending_flag(pending: bool, status: str) -> None:
    (row,) = normalize([create_test_transaction(pending=pending)])

    assert row.status == status


def test_amount_sign_and_currency_pass_through() -> None:
    txn = create_test_transaction(amount=-1234.56, iso_currency_code="CAD")

    (row,) = normalize([txn])

    assert row.amount == Decimal("-1234.56")
    assert row.to_cells()["Amount"] == "-1234.56"
    assert row.currency == "CAD"


def test_float_amount_has_no_binary_noise() -> None:
    (row,) = normalize([create_test_transaction(amount=0.1 + 0.2)])

    assert row.to_cells()["Amount"] == repr(0.1 + 0.2)


def test_unofficial_currency_used_when_iso_absent() -> None:
    txn = create_test_transaction(iso_currency_code=None)
    txn["unofficial_currency_code"] = "BTC"

    (row,) = normalize([txn])

    assert row.currency == "BTC"


def test_missing_identifier_fails_whole_batch() -> None:
    records = [
        create_test_transaction(transaction_id="ok"),
        create_test_transaction(transaction_id=None),
    ]

    with pytest.raises(NormalizationError) as exc_info:
        normalize(records)

    assert "transaction_id" in str(exc_info.value)
    assert exc_info.value.risk is RunRisk.DATA_LOSS


def test_malformed_date_names_the_transaction() -> None:
    txn = create_test_transaction(transaction_id="bad_date", date="not-a-date")

    with pytest.raises(NormalizationError, match="bad_date") as exc_info:
        normalize([txn])

    assert exc_info.value.transaction_id == "bad_date"
