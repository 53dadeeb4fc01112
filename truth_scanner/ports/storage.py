"""Storage port."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStoragePort(ABC):
    """Durable storage of whole text blobs under fixed keys."""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the blob stored under ``key`` or ``None`` when absent."""

    @abstractmethod
    def write(self, key: str, blob: str) -> None:
        """Replace the blob stored under ``key`` atomically."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""
