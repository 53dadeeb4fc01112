from __future__ import annotations

from typing import Any, Callable, Dict

import pytest

LAYERS = {
    "spatial_acoustics": "Room reverb consistent with a handset in a small room.",
    "emotional_micro_dynamics": "Natural pitch jitter under stress.",
    "cultural_linguistics": "Honorifics used appropriately.",
    "breath_emotion_sync": "Breaths precede emphasised phrases.",
    "spectral_artifacts": "No vocoder banding above 8 kHz.",
    "code_switching": "Fluid switches between Tamil and English.",
}


def _raw_verdict(**overrides: Any) -> Dict[str, Any]:
    raw: Dict[str, Any] = {
        "final_verdict": "SAFE",
        "confidence_score": 0.82,
        "risk_level": "LOW",
        "detected_language": "Tamil",
        "language_match": True,
        "analysis_layers": dict(LAYERS),
        "safety_actions": ["IGNORE"],
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def make_raw() -> Callable[..., Dict[str, Any]]:
    """Factory for a well-formed engine response; keyword args override fields."""
    return _raw_verdict
