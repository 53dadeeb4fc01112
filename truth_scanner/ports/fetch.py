"""Remote media fetch port."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FetchedMedia:
    """Body and declared type of a downloaded resource."""

    content: bytes
    content_type: Optional[str] = None
    charset: Optional[str] = None


class RemoteFetchPort(ABC):
    """Downloads sources given as URLs."""

    @abstractmethod
    def fetch(self, url: str, max_bytes: int) -> FetchedMedia:
        """Return the resource body.

        Raises :class:`RemoteFetchFailedError` on network or HTTP failure and
        :class:`PayloadTooLargeError` once more than ``max_bytes`` arrive.
        """
