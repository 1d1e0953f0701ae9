"""Shared test fixtures."""

from __future__ import annotations

import pytest

# Importing the CLI loads a developer's .env; these would leak into tests.
_AMBIENT_ENV_VARS = ("PLAID_ACCESS_TOKEN", "PLAID_ITEM_ID", "EXPORT_ACCOUNT_IDS")


@pytest.fixture(autouse=True)
def _clear_ambient_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop credential and filter settings picked up from the environment."""
    for name in _AMBIENT_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
