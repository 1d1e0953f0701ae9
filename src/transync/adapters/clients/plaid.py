from __future__ import annotations

from datetime import date
import http.client
import json
import os
from typing import Any, Literal, Self, TypedDict, cast
import urllib.error
import urllib.request

from pydantic import BaseModel, Field

from transync.models.transaction import PersonalFinanceCategory, Transaction

PlaidEnv = Literal["sandbox", "development", "production"]

PLAID_ENV_MAP: dict[PlaidEnv, str] = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}
PLAID_API_VERSION = "2020-09-14"
DEFAULT_TIMEOUT_SECONDS = 30.0


class PlaidClientError(Exception):
    """Base error for Plaid client failures."""


class PlaidApiError(PlaidClientError):
    """Plaid answered with an error object."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        error_type: str | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_type = error_type
        self.error_code = error_code


class PlaidItemInfo(TypedDict):
    item_id: str
    institution_id: str | None
    institution_name: str | None


class PlaidBaseModel(BaseModel):
    """Shared base for Plaid response models with a short parse alias."""

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class ItemModel(PlaidBaseModel):
    item_id: str
    institution_id: str | None = None


class ItemGetResponse(PlaidBaseModel):
    item: ItemModel


class InstitutionModel(PlaidBaseModel):
    name: str | None = None


class InstitutionGetByIdResponse(PlaidBaseModel):
    institution: InstitutionModel | None = None


class PlaidTransactionModel(PlaidBaseModel):
    transaction_id: str | None = None
    account_id: str | None = None
    amount: float | None = None
    iso_currency_code: str | None = None
    unofficial_currency_code: str | None = None
    date: str | None = None
    name: str | None = None
    merchant_name: str | None = None
    pending: bool = False
    payment_channel: str | None = None
    category: list[str] | None = None
    personal_finance_category: dict[str, Any] | None = None

    def to_typed(self) -> Transaction:
        txn: Transaction = {
            "transaction_id": self.transaction_id,
            "account_id": self.account_id,
            "amount": self.amount,
            "iso_currency_code": self.iso_currency_code,
            "unofficial_currency_code": self.unofficial_currency_code,
            "date": self.date,
            "name": self.name or "",
            "merchant_name": self.merchant_name,
            "pending": self.pending,
            "payment_channel": self.payment_channel,
            "category": self.category,
            "personal_finance_category": cast(
                PersonalFinanceCategory | None, self.personal_finance_category
            ),
        }
        return txn


class RemovedTransactionModel(PlaidBaseModel):
    transaction_id: str | None = None


class TransactionsGetResponse(PlaidBaseModel):
    transactions: list[PlaidTransactionModel] = Field(default_factory=list)
    total_transactions: int = 0


class TransactionsSyncResponse(PlaidBaseModel):
    added: list[PlaidTransactionModel] = Field(default_factory=list)
    modified: list[PlaidTransactionModel] = Field(default_factory=list)
    removed: list[RemovedTransactionModel] = Field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False

    def to_sync_result(self, *, fallback_cursor: str | None) -> dict[str, Any]:
        return {
            "added": [txn.to_typed() for txn in self.added],
            "modified": [txn.to_typed() for txn in self.modified],
            "removed": [
                item.transaction_id for item in self.removed if item.transaction_id
            ],
            "next_cursor": self.next_cursor or (fallback_cursor or ""),
            "has_more": self.has_more,
        }


class PlaidClient:
    def __init__(
        self,
        *,
        client_id: str,
        secret: str,
        env: PlaidEnv = "sandbox",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._client_id = client_id
        self._secret = secret
        self._env = env
        self._timeout_seconds = timeout_seconds

    @property
    def env(self) -> PlaidEnv:
        return self._env

    @classmethod
    def from_env(cls) -> PlaidClient:
        """Construct a PlaidClient from environment variables.

        Required:
        - PLAID_CLIENT_ID
        - PLAID_ENV (defaults to sandbox)
        - PLAID_<ENV>_SECRET (e.g. PLAID_SANDBOX_SECRET), or PLAID_SECRET
        """
        env_str = os.getenv("PLAID_ENV", "sandbox").lower()
        if env_str not in PLAID_ENV_MAP:
            raise PlaidClientError(
                f"Invalid PLAID_ENV={env_str!r}. "
                "Expected one of: sandbox, development, production."
            )
        env: PlaidEnv = env_str  # type: ignore[assignment]

        client_id = cls._getenv_or_die("PLAID_CLIENT_ID")
        secret = cls._secret_from_env(env)
        return cls(client_id=client_id, secret=secret, env=env)

    @staticmethod
    def _getenv_or_die(name: str) -> str:
        value = os.getenv(name)
        if not value:
            raise PlaidClientError(f"Missing required environment variable: {name}")
        return value

    @classmethod
    def _secret_from_env(cls, env: PlaidEnv) -> str:
        env_specific = os.getenv(f"PLAID_{env.upper()}_SECRET")
        if env_specific:
            return env_specific
        return cls._getenv_or_die("PLAID_SECRET")

    def _base_url(self) -> str:
        try:
            return PLAID_ENV_MAP[self._env]
        except KeyError as e:
            raise PlaidClientError(
                f"Unsupported Plaid environment: {self._env!r}"
            ) from e

    def _parse_json_response(self, body: str) -> dict[str, Any]:
        """Parse JSON response from Plaid API.

        Args:
            body: JSON response body as string

        Returns:
            Parsed JSON as dictionary

        Raises:
            PlaidClientError: If JSON parsing fails
        """
        try:
            return cast(dict[str, Any], json.loads(body))
        except json.JSONDecodeError as e:
            raise PlaidClientError(
                f"Failed to parse Plaid response as JSON: {e}: {body}"
            ) from e

    def _api_error(self, status: int, body: str) -> PlaidApiError:
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            return PlaidApiError(f"Plaid API error ({status}): {body}", status=status)

        error_code = data.get("error_code")
        message = data.get("error_message") or body
        return PlaidApiError(
            f"Plaid API error ({status}, {error_code}): {message}",
            status=status,
            error_type=data.get("error_type"),
            error_code=error_code,
        )

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._base_url().rstrip("/") + path
        body_with_auth = {
            "client_id": self._client_id,
            "secret": self._secret,
            **payload,
        }
        data = json.dumps(body_with_auth).encode("utf-8")
        req = urllib.request.Request(  # noqa: S310
            url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "Plaid-Version": PLAID_API_VERSION,
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(  # noqa: S310 - external HTTPS
                req, timeout=self._timeout_seconds
            ) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:  # pragma: no cover - network-dependent
            err_body = e.read().decode("utf-8", "ignore")
            raise self._api_error(e.code, err_body) from e
        except urllib.error.URLError as e:  # pragma: no cover - network-dependent
            raise PlaidClientError(f"Network error calling Plaid API: {e}") from e
        except TimeoutError as e:  # pragma: no cover - network-dependent
            raise PlaidClientError(f"Timed out calling Plaid API: {path}") from e
        except (OSError, http.client.HTTPException) as e:
            raise PlaidClientError(f"Connection error calling Plaid API: {e}") from e
        except UnicodeDecodeError as e:
            raise PlaidClientError(
                f"Plaid response for {path} is not valid UTF-8: {e}"
            ) from e

        return self._parse_json_response(body)

    # High-level APIs -----------------------------------------------------

    def get_item_info(self, access_token: str) -> PlaidItemInfo:
        """Return item and institution information for an access token."""
        item_resp = ItemGetResponse.parse(
            self._post("/item/get", {"access_token": access_token})
        )

        item_id = item_resp.item.item_id
        institution_id = item_resp.item.institution_id
        institution_name: str | None = None

        if institution_id:
            inst_payload: dict[str, Any] = {
                "institution_id": institution_id,
                "country_codes": ["US"],
            }
            inst_resp = InstitutionGetByIdResponse.parse(
                self._post("/institutions/get_by_id", inst_payload)
            )
            if inst_resp.institution and inst_resp.institution.name:
                institution_name = inst_resp.institution.name

        info: PlaidItemInfo = {
            "item_id": item_id,
            "institution_id": institution_id,
            "institution_name": institution_name,
        }
        return info

    def list_transactions(
        self,
        access_token: str,
        *,
        start_date: date,
        end_date: date,
        account_ids: list[str] | None = None,
        offset: int = 0,
        limit: int = 500,
    ) -> tuple[list[Transaction], int]:
        """Return a page of transactions and the window total via /transactions/get."""
        options: dict[str, Any] = {
            "count": limit,
            "offset": offset,
        }
        if account_ids:
            options["account_ids"] = account_ids

        payload: dict[str, Any] = {
            "access_token": access_token,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "options": options,
        }

        resp = TransactionsGetResponse.parse(self._post("/transactions/get", payload))
        return [txn.to_typed() for txn in resp.transactions], resp.total_transactions

    def sync_transactions(
        self,
        access_token: str,
        *,
        cursor: str | None = None,
        count: int = 500,
    ) -> dict[str, Any]:
        """Thin wrapper around Plaid's /transactions/sync endpoint.

        ``cursor=None`` omits the field, which Plaid reads as "from the
        beginning"; an empty string is sent as-is.
        """
        payload: dict[str, Any] = {
            "access_token": access_token,
            "count": count,
        }
        if cursor is not None:
            payload["cursor"] = cursor

        resp = TransactionsSyncResponse.parse(self._post("/transactions/sync", payload))
        return resp.to_sync_result(fallback_cursor=cursor)
