"""Local filesystem storage adapter."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from truth_scanner.domain.exceptions import StorageError
from truth_scanner.ports.storage import KeyValueStoragePort


class LocalStorageAdapter(KeyValueStoragePort):
    """Stores each key as ``<key>.json`` under a base directory."""

    def __init__(self, base_dir: str | Path = "/tmp") -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def uri_for(self, key: str) -> str:
        return str(self._base_dir / f"{key}.json")

    def read(self, key: str) -> Optional[str]:
        uri = self.uri_for(key)
        try:
            with open(uri, "r", encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Failed to read {uri}") from exc

    def write(self, key: str, blob: str) -> None:
        """Write to a sibling temp file, then swap it in so readers never see partial data."""
        uri = self.uri_for(key)
        tmp_name: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self._base_dir, prefix=f".{key}.", delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(blob)
            os.replace(tmp_name, uri)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {uri}") from exc

    def delete(self, key: str) -> None:
        uri = self.uri_for(key)
        try:
            Path(uri).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete {uri}") from exc

    def exists(self, key: str) -> bool:
        return Path(self.uri_for(key)).exists()
