from __future__ import annotations

import base64
from types import SimpleNamespace
from typing import Any

import pytest

from truth_scanner.adapters.ai.gemini import GeminiAnalysisAdapter, is_transient
from truth_scanner.domain.exceptions import (
    MalformedResponseError,
    PermanentAnalysisError,
    TransientAnalysisError,
)
from truth_scanner.domain.models import EncodedPayload


class FakeModels:
    def __init__(self, result: Any) -> None:
        self._result = result
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class FakeClient:
    def __init__(self, result: Any) -> None:
        self.models = FakeModels(result)


class ApiError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code


def make_adapter(result: Any) -> tuple[GeminiAnalysisAdapter, FakeClient]:
    client = FakeClient(result)
    keys: list[str] = []

    def factory(api_key: str) -> FakeClient:
        keys.append(api_key)
        return client

    adapter = GeminiAnalysisAdapter(api_key="secret", model="models/gemini-2.5-flash", client_factory=factory)
    assert keys == ["secret"]
    return adapter, client


AUDIO = EncodedPayload(
    kind="audio", data=base64.b64encode(b"voice").decode("ascii"), mime_type="audio/webm", byte_size=5, sha256="x",
)
TEXT = EncodedPayload(kind="text", data="Your account is locked", byte_size=22, sha256="y")


def test_audio_payload_is_sent_inline_with_json_config() -> None:
    adapter, client = make_adapter(SimpleNamespace(text='{"final_verdict": "SAFE"}'))

    text = adapter.generate(AUDIO, "PROMPT", "SYSTEM")

    assert text == '{"final_verdict": "SAFE"}'
    call = client.models.calls[0]
    assert call["model"] == "models/gemini-2.5-flash"
    parts = call["contents"][0]["parts"]
    assert parts[0] == {"text": "PROMPT"}
    assert parts[1]["inline_data"] == {"data": b"voice", "mime_type": "audio/webm"}
    assert call["config"]["system_instruction"] == "SYSTEM"
    assert call["config"]["response_mime_type"] == "application/json"


def test_text_payload_sends_prompt_only() -> None:
    adapter, client = make_adapter(SimpleNamespace(text="{}"))

    adapter.generate(TEXT, "PROMPT", "SYSTEM")

    assert client.models.calls[0]["contents"][0]["parts"] == [{"text": "PROMPT"}]


@pytest.mark.parametrize(
    "error",
    [ApiError(503, "The model is overloaded. Please try again later."), ApiError(429, "Too many requests")],
)
def test_overload_errors_are_transient(error: Exception) -> None:
    adapter, _ = make_adapter(error)

    with pytest.raises(TransientAnalysisError):
        adapter.generate(TEXT, "PROMPT", "SYSTEM")


def test_other_errors_are_permanent() -> None:
    adapter, _ = make_adapter(ApiError(400, "API key not valid"))

    with pytest.raises(PermanentAnalysisError, match="API key not valid"):
        adapter.generate(TEXT, "PROMPT", "SYSTEM")


def test_empty_response_is_malformed() -> None:
    adapter, _ = make_adapter(SimpleNamespace(text=""))

    with pytest.raises(MalformedResponseError):
        adapter.generate(TEXT, "PROMPT", "SYSTEM")


def test_is_transient_reads_status_text() -> None:
    error = Exception("quota")
    error.status = "RESOURCE_EXHAUSTED"  # type: ignore[attr-defined]

    assert is_transient(error) is True
    assert is_transient(ValueError("bad request")) is False
