"""Bounded, persisted history of completed analyses."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import TypeAdapter, ValidationError

from truth_scanner.config import HISTORY_LIMIT, HISTORY_STORAGE_KEY
from truth_scanner.domain.exceptions import StorageError
from truth_scanner.domain.models import (
    AnalysisResult,
    Classification,
    HistoryEntry,
    HistoryStats,
    RiskLevel,
    Verdict,
)
from truth_scanner.ports.storage import KeyValueStoragePort

logger = logging.getLogger(__name__)

_ENTRIES = TypeAdapter(List[HistoryEntry])


class HistoryStore:
    """Most-recent-first log capped at ``limit`` entries.

    The whole list is rewritten under ``key`` on every mutation and the
    in-memory copy only changes once the write succeeded.
    """

    def __init__(
        self,
        storage: KeyValueStoragePort,
        key: str = HISTORY_STORAGE_KEY,
        limit: int = HISTORY_LIMIT,
        require_language_match: bool = True,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be positive")
        self._storage = storage
        self._key = key
        self._limit = limit
        self._require_language_match = require_language_match
        self._clock = clock
        self._entries: List[HistoryEntry] = self._load()

    @property
    def limit(self) -> int:
        return self._limit

    def _load(self) -> List[HistoryEntry]:
        try:
            blob = self._storage.read(self._key)
        except StorageError as exc:
            logger.warning("History unavailable, starting empty: %s", exc)
            return []
        if not blob:
            return []
        try:
            entries = _ENTRIES.validate_json(blob)
        except ValidationError as exc:
            logger.warning("Discarding corrupt history blob (%d error(s))", exc.error_count())
            return []
        return entries[: self._limit]

    def _persist(self, entries: List[HistoryEntry]) -> None:
        self._storage.write(self._key, _ENTRIES.dump_json(entries).decode("utf-8"))
        self._entries = entries

    def append(self, result: AnalysisResult) -> bool:
        """Store ``result`` at the head; return ``False`` when policy rejects it."""

        if self._require_language_match and not result.language_match:
            logger.info("Not storing %s: language mismatch", result.id)
            return False
        entry = HistoryEntry.model_validate(
            {**result.model_dump(), "stored_at": self._clock().isoformat()}
        )
        entries = [entry] + [existing for existing in self._entries if existing.id != entry.id]
        evicted = entries[self._limit :]
        self._persist(entries[: self._limit])
        if evicted:
            logger.info("History full, evicted %s", ", ".join(e.id for e in evicted))
        logger.info("Stored %s (%d/%d)", entry.id, len(self._entries), self._limit)
        return True

    def remove(self, entry_id: str) -> bool:
        remaining = [entry for entry in self._entries if entry.id != entry_id]
        if len(remaining) == len(self._entries):
            return False
        self._persist(remaining)
        logger.info("Removed %s from history", entry_id)
        return True

    def clear(self) -> None:
        self._persist([])
        logger.info("History cleared")

    def list(self) -> List[HistoryEntry]:
        return list(self._entries)

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        return next((entry for entry in self._entries if entry.id == entry_id), None)

    def stats(self) -> HistoryStats:
        verdicts = Counter(entry.verdict.value for entry in self._entries)
        ai_generated = sum(
            1
            for entry in self._entries
            if entry.classification is Classification.AI_GENERATED
            or (entry.classification is None and entry.verdict is Verdict.AI_GENERATED_FRAUD)
        )
        return HistoryStats(
            total=len(self._entries),
            ai_generated=ai_generated,
            human=len(self._entries) - ai_generated,
            high_risk=sum(1 for entry in self._entries if entry.risk_level is RiskLevel.HIGH),
            by_verdict={verdict.value: verdicts.get(verdict.value, 0) for verdict in Verdict},
        )

    def __len__(self) -> int:
        return len(self._entries)
