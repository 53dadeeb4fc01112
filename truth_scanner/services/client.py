"""Remote analysis client: prompt, retry, parse, normalise."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from truth_scanner.domain.exceptions import PermanentAnalysisError, TransientAnalysisError
from truth_scanner.domain.models import (
    AnalysisRequest,
    AnalysisResult,
    EncodedPayload,
    LiveUpdate,
    SupportedLanguage,
)
from truth_scanner.ports.ai import AnalysisEnginePort
from truth_scanner.services.normalizer import ResultNormalizer, parse_response_text
from truth_scanner.services.prompt import PromptService
from truth_scanner.services.retry import RetryPolicy, Sleep

if TYPE_CHECKING:
    from truth_scanner.services.encoder import TransportEncoder
    from truth_scanner.services.live import LiveSession

logger = logging.getLogger(__name__)

# A live chunk is superseded within seconds, so it is never retried
LIVE_RETRY_POLICY = RetryPolicy(max_retries=0)


class RemoteAnalysisClient:
    """Submits encoded payloads to the analysis engine."""

    def __init__(
        self,
        engine: AnalysisEnginePort,
        prompt_service: PromptService,
        normalizer: Optional[ResultNormalizer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        live_engine: Optional[AnalysisEnginePort] = None,
    ) -> None:
        self._engine = engine
        self._live_engine = live_engine or engine
        self._prompts = prompt_service
        self._normalizer = normalizer or ResultNormalizer()
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def normalizer(self) -> ResultNormalizer:
        return self._normalizer

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    async def fetch_raw(
        self,
        payload: EncodedPayload,
        target_language: SupportedLanguage,
        *,
        prompt_key: str = "forensic",
        live: bool = False,
    ) -> Dict[str, Any]:
        """Call the engine with retry and return the parsed JSON object.

        Exhausted transient failures surface as :class:`PermanentAnalysisError`.
        """
        template = self._prompts.get_prompt(prompt_key)
        prompt = self._prompts.render(template.key, payload, target_language)
        engine = self._live_engine if live else self._engine
        policy = LIVE_RETRY_POLICY if live else self._retry

        async def attempt() -> str:
            return await asyncio.to_thread(engine.generate, payload, prompt, template.system_instruction)

        try:
            text = await policy.run(attempt, sleep=self._sleep)
        except TransientAnalysisError as exc:
            raise PermanentAnalysisError(
                f"Remote engine still overloaded after {policy.max_attempts} attempt(s): {exc}"
            ) from exc
        return parse_response_text(text)

    async def submit(self, payload: EncodedPayload, request: AnalysisRequest, operator: str) -> AnalysisResult:
        raw = await self.fetch_raw(payload, request.target_language)
        result = self._normalizer.normalize(raw, request, operator=operator, payload=payload)
        logger.info(
            "Analysis %s: verdict=%s risk=%s match=%s",
            result.id, result.verdict.value, result.risk_level.value, result.language_match,
        )
        return result

    def open_live_session(
        self,
        target_language: SupportedLanguage,
        on_update: Callable[[LiveUpdate], None],
        *,
        encoder: "TransportEncoder",
        mime_type: Optional[str] = None,
    ) -> "LiveSession":
        """Start a live session; must be called with a running event loop."""
        from truth_scanner.services.live import LiveSession

        return LiveSession(self, encoder, target_language, on_update, mime_type=mime_type)
