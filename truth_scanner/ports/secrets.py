"""Secrets port."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class SecretsPort(ABC):
    """Interface for retrieving API keys and operator credentials."""

    @abstractmethod
    def get_secret(self, key: str) -> str:
        """Return the secret value or raise :class:`SecretsError`."""

    @abstractmethod
    def get_optional_secret(self, key: str) -> Optional[str]:
        """Return the secret value if available."""
