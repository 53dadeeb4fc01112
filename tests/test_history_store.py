from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from truth_scanner.adapters.storage.local import LocalStorageAdapter
from truth_scanner.domain.exceptions import StorageError
from truth_scanner.domain.models import (
    AnalysisResult,
    Classification,
    ForensicLayers,
    RiskLevel,
    SupportedLanguage,
    Verdict,
)
from truth_scanner.ports.storage import KeyValueStoragePort
from truth_scanner.services.history import HistoryStore

from conftest import LAYERS


class MemoryStorage(KeyValueStoragePort):
    def __init__(self, blobs: Optional[dict[str, str]] = None, fail_writes: bool = False) -> None:
        self.blobs = dict(blobs or {})
        self.fail_writes = fail_writes
        self.writes = 0

    def read(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    def write(self, key: str, blob: str) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        self.writes += 1
        self.blobs[key] = blob

    def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


def make_result(
    result_id: str,
    verdict: Verdict = Verdict.SAFE,
    risk: RiskLevel = RiskLevel.LOW,
    language_match: bool = True,
    classification: Optional[Classification] = None,
) -> AnalysisResult:
    return AnalysisResult(
        id=result_id,
        timestamp="2026-03-01T12:00:00+00:00",
        verdict=verdict,
        confidence_score=0.8,
        risk_level=risk,
        detected_language="Tamil" if language_match else "Hindi",
        target_language=SupportedLanguage.TAMIL,
        language_match=language_match,
        layers=ForensicLayers.model_validate(LAYERS),
        operator="ops",
        classification=classification,
    )


def fixed_clock() -> datetime:
    return datetime(2026, 3, 2, tzinfo=timezone.utc)


def test_append_prepends_and_persists() -> None:
    storage = MemoryStorage()
    store = HistoryStore(storage, key="history", clock=fixed_clock)

    assert store.append(make_result("a")) is True
    assert store.append(make_result("b")) is True

    assert [entry.id for entry in store.list()] == ["b", "a"]
    assert store.list()[0].stored_at == "2026-03-02T00:00:00+00:00"
    assert "history" in storage.blobs
    assert storage.writes == 2


def test_fifty_first_entry_evicts_oldest() -> None:
    store = HistoryStore(MemoryStorage(), limit=50)
    for n in range(50):
        store.append(make_result(f"r{n}"))

    store.append(make_result("r50"))

    ids = [entry.id for entry in store.list()]
    assert len(ids) == 50
    assert ids[0] == "r50"
    assert "r0" not in ids
    assert ids[-1] == "r1"


def test_reappending_same_id_does_not_duplicate() -> None:
    store = HistoryStore(MemoryStorage())
    store.append(make_result("a"))
    store.append(make_result("b"))

    store.append(make_result("a"))

    assert [entry.id for entry in store.list()] == ["a", "b"]


def test_mismatched_result_is_not_stored() -> None:
    storage = MemoryStorage()
    store = HistoryStore(storage)

    stored = store.append(make_result("m", verdict=Verdict.CAUTION, risk=RiskLevel.MEDIUM, language_match=False))

    assert stored is False
    assert len(store) == 0
    assert storage.writes == 0


def test_mismatched_result_can_be_stored_when_policy_allows() -> None:
    store = HistoryStore(MemoryStorage(), require_language_match=False)

    assert store.append(make_result("m", verdict=Verdict.CAUTION, risk=RiskLevel.MEDIUM, language_match=False))
    assert len(store) == 1


def test_entries_survive_reload(tmp_path: Path) -> None:
    HistoryStore(LocalStorageAdapter(tmp_path)).append(make_result("persisted", verdict=Verdict.BLOCK_NOW, risk=RiskLevel.HIGH))

    reloaded = HistoryStore(LocalStorageAdapter(tmp_path))

    assert [entry.id for entry in reloaded.list()] == ["persisted"]
    assert reloaded.get("persisted").verdict is Verdict.BLOCK_NOW


@pytest.mark.parametrize("blob", ["{not json", '{"id": "x"}', '[{"id": "x"}]'])
def test_corrupt_blob_loads_as_empty(blob: str) -> None:
    store = HistoryStore(MemoryStorage({"forensic_history": blob}))

    assert store.list() == []


def test_failed_write_leaves_memory_unchanged() -> None:
    storage = MemoryStorage()
    store = HistoryStore(storage)
    store.append(make_result("a"))
    storage.fail_writes = True

    with pytest.raises(StorageError):
        store.append(make_result("b"))

    assert [entry.id for entry in store.list()] == ["a"]


def test_remove_and_clear() -> None:
    store = HistoryStore(MemoryStorage())
    store.append(make_result("a"))
    store.append(make_result("b"))

    assert store.remove("a") is True
    assert store.remove("missing") is False
    assert [entry.id for entry in store.list()] == ["b"]

    store.clear()
    assert store.list() == []
    assert store.get("b") is None


def test_list_returns_a_copy() -> None:
    store = HistoryStore(MemoryStorage())
    store.append(make_result("a"))

    store.list().clear()

    assert len(store) == 1


def test_stats_counts_classifications_and_risk() -> None:
    store = HistoryStore(MemoryStorage())
    store.append(make_result("safe"))
    store.append(make_result("fraud", verdict=Verdict.AI_GENERATED_FRAUD, risk=RiskLevel.HIGH))
    store.append(
        make_result(
            "blocked", verdict=Verdict.BLOCK_NOW, risk=RiskLevel.HIGH, classification=Classification.AI_GENERATED,
        )
    )
    store.append(
        make_result("scam-human", verdict=Verdict.BLOCK_NOW, risk=RiskLevel.HIGH, classification=Classification.HUMAN)
    )

    stats = store.stats()

    assert stats.total == 4
    assert stats.ai_generated == 2
    assert stats.human == 2
    assert stats.high_risk == 3
    assert stats.by_verdict == {"SAFE": 1, "CAUTION": 0, "AI_GENERATED_FRAUD": 1, "BLOCK_NOW": 2}


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        HistoryStore(MemoryStorage(), limit=0)
