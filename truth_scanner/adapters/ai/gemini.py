"""Google Gemini analysis adapter."""
from __future__ import annotations

import base64
import importlib
import importlib.util
import logging
from typing import Any, Callable, Optional

try:
    _genai_module = importlib.util.find_spec("google.genai")
except ModuleNotFoundError:  # pragma: no cover - namespace package missing
    _genai_module = None
if _genai_module is not None:  # pragma: no cover - optional dependency
    genai = importlib.import_module("google.genai")  # type: ignore
else:  # pragma: no cover - optional dependency
    genai = None  # type: ignore

from truth_scanner.domain.exceptions import (
    MalformedResponseError,
    PermanentAnalysisError,
    TransientAnalysisError,
)
from truth_scanner.domain.models import EncodedPayload
from truth_scanner.ports.ai import AnalysisEnginePort

logger = logging.getLogger(__name__)

# 429 RESOURCE_EXHAUSTED and 503 UNAVAILABLE are the overload signals
TRANSIENT_STATUS_CODES = frozenset({429, 503})
TRANSIENT_MARKERS = ("overloaded", "unavailable", "resource_exhausted", "rate limit")


def is_transient(exc: BaseException) -> bool:
    """Return whether ``exc`` is an overload or rate-limit signal."""

    code = getattr(exc, "code", None)
    if isinstance(code, int) and code in TRANSIENT_STATUS_CODES:
        return True
    text = f"{getattr(exc, 'status', '') or ''} {exc}".lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


class GeminiAnalysisAdapter(AnalysisEnginePort):
    """Adapter around the google-genai client."""

    provider_name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        client_factory: Optional[Callable[[str], Any]] = None,
        temperature: float = 0.1,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._client_factory = client_factory or self._default_factory
        self._client = self._client_factory(api_key)

    @property
    def model(self) -> str:
        return self._model

    def _default_factory(self, api_key: str) -> Any:  # pragma: no cover - requires dependency
        if genai is None:
            raise PermanentAnalysisError("google-genai library is not available")
        return genai.Client(api_key=api_key)

    def generate(self, payload: EncodedPayload, prompt: str, system_instruction: str) -> str:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if payload.kind == "audio":
            parts.append(
                {"inline_data": {"data": base64.b64decode(payload.data), "mime_type": payload.mime_type}}
            )
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=[{"role": "user", "parts": parts}],
                config={
                    "system_instruction": system_instruction,
                    "response_mime_type": "application/json",
                    "temperature": self._temperature,
                },
            )
        except Exception as exc:
            if is_transient(exc):
                raise TransientAnalysisError(f"Gemini is overloaded: {exc}") from exc
            raise PermanentAnalysisError(f"Gemini call failed: {exc}") from exc
        text = getattr(response, "text", None)
        if not text:
            raise MalformedResponseError("Model returned no text")
        logger.debug("Gemini %s returned %d characters", self._model, len(text))
        return text
