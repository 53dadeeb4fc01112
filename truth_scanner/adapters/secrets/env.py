"""Environment-based secrets adapter."""
from __future__ import annotations

import os
from typing import Optional

from truth_scanner.domain.exceptions import SecretsError
from truth_scanner.ports.secrets import SecretsPort


class EnvSecretsAdapter(SecretsPort):
    """Reads ``PREFIX_KEY`` from the environment, falling back to plain ``KEY``."""

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix.strip("_").upper()

    def _candidates(self, key: str) -> list[str]:
        if self._prefix:
            return [f"{self._prefix}_{key}", key]
        return [key]

    def get_secret(self, key: str) -> str:
        value = self.get_optional_secret(key)
        if value is None:
            raise SecretsError(f"Missing secret for key '{key}'")
        return value

    def get_optional_secret(self, key: str) -> Optional[str]:
        for env_key in self._candidates(key):
            value = os.environ.get(env_key)
            if value:
                return value
        return None
