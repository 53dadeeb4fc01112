"""Prompt management service."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict

from truth_scanner.domain.models import EncodedPayload, SupportedLanguage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptTemplate:
    """System instruction plus a request body with a ``{request_json}`` slot."""

    key: str
    title: str
    system_instruction: str
    body: str


class PromptService:
    """Provides prompt templates and renders analysis requests."""

    def __init__(self, templates: Dict[str, PromptTemplate]) -> None:
        self._templates = templates

    def get_prompt(self, key: str, fallback_key: str = "forensic") -> PromptTemplate:
        """Return a template by key, falling back to ``fallback_key``."""

        return self._templates.get(key, self._templates[fallback_key])

    def list_templates(self) -> Dict[str, PromptTemplate]:
        return dict(self._templates)

    def render(self, key: str, payload: EncodedPayload, target_language: SupportedLanguage) -> str:
        """Fill the template body with the request envelope for ``payload``."""

        envelope = {
            "audio_base64": "DATA_STREAM_INCLUDED" if payload.kind == "audio" else "N/A",
            "text_sample": payload.data if payload.kind == "text" else "",
            "sms_text": payload.auxiliary_text or "",
            "target_language": target_language.value,
            "target_locale": target_language.locale or "auto",
        }
        template = self.get_prompt(key)
        logger.debug("Rendering prompt %s for %s payload", template.key, payload.kind)
        return template.body.format(request_json=json.dumps(envelope, ensure_ascii=False, indent=2))
