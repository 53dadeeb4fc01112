"""Remote analysis engine port."""
from __future__ import annotations

from abc import ABC, abstractmethod

from truth_scanner.domain.models import EncodedPayload


class AnalysisEnginePort(ABC):
    """Interface for remote analysis engines."""

    provider_name: str

    @abstractmethod
    def generate(self, payload: EncodedPayload, prompt: str, system_instruction: str) -> str:
        """Submit ``payload`` and return the raw response text.

        Implementations raise :class:`TransientAnalysisError` for overload or
        rate-limit signals and :class:`PermanentAnalysisError` for anything else.
        """
