from __future__ import annotations

import pytest

from truth_scanner.adapters.secrets.env import EnvSecretsAdapter
from truth_scanner.domain.exceptions import SecretsError


def test_prefixed_variable_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRUTH_SCANNER_ADMIN_EMAIL", "prefixed@example.com")
    monkeypatch.setenv("ADMIN_EMAIL", "plain@example.com")

    adapter = EnvSecretsAdapter(prefix="truth_scanner_")

    assert adapter.get_secret("ADMIN_EMAIL") == "prefixed@example.com"


def test_falls_back_to_plain_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TRUTH_SCANNER_GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "key-123")

    assert EnvSecretsAdapter(prefix="TRUTH_SCANNER").get_optional_secret("GEMINI_API_KEY") == "key-123"


def test_empty_values_count_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("USER_PASSWORD", "")

    adapter = EnvSecretsAdapter()

    assert adapter.get_optional_secret("USER_PASSWORD") is None
    with pytest.raises(SecretsError, match="USER_PASSWORD"):
        adapter.get_secret("USER_PASSWORD")
