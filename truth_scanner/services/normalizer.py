"""Validation and normalisation of remote analysis responses."""
from __future__ import annotations

import json
import logging
import math
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from truth_scanner.domain.exceptions import IncompleteSchemaError, MalformedResponseError
from truth_scanner.domain.models import (
    AnalysisRequest,
    AnalysisResult,
    EncodedPayload,
    LiveUpdate,
    RemoteLiveUpdate,
    RemoteVerdict,
    RiskLevel,
    SupportedLanguage,
    Verdict,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def parse_response_text(text: str) -> Dict[str, Any]:
    """Strip markdown fences and stray prose, then parse one JSON object."""

    cleaned = _FENCE_RE.sub("", text or "").strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    try:
        parsed = json.loads(cleaned)
    except ValueError as exc:
        raise MalformedResponseError(f"Response is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def clamp_confidence(value: float) -> float:
    if math.isnan(value):
        raise IncompleteSchemaError("confidence_score is not a number")
    return min(1.0, max(0.0, value))


def apply_mismatch_override(verdict: Verdict, risk: RiskLevel) -> Tuple[Verdict, RiskLevel]:
    """Escalate a language-mismatched outcome to at least CAUTION / MEDIUM."""

    if verdict is Verdict.SAFE:
        verdict = Verdict.CAUTION
    if risk.rank < RiskLevel.MEDIUM.rank:
        risk = RiskLevel.MEDIUM
    return verdict, risk


def _flatten(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Lift fields from the nested response shape onto the top level."""

    data = dict(raw)
    forensics = data.get("voice_forensics")
    if isinstance(forensics, Mapping):
        if "analysis_layers" not in data and "analysis_layers" in forensics:
            data["analysis_layers"] = forensics["analysis_layers"]
        if "classification" not in data and "classification" in forensics:
            data["classification"] = forensics["classification"]
    if "analysis_layers" not in data and "layers" in data:
        data["analysis_layers"] = data["layers"]
    spam = data.get("spam_behavior")
    if isinstance(spam, Mapping):
        if "detected_language" not in data and "language_detected" in spam:
            data["detected_language"] = spam["language_detected"]
        if "scam_patterns" not in data and "scam_patterns" in spam:
            data["scam_patterns"] = spam["scam_patterns"]
    return data


def _describe(exc: ValidationError) -> str:
    fields = sorted({".".join(str(part) for part in err["loc"]) or "<root>" for err in exc.errors()})
    return "Response is missing or has invalid fields: " + ", ".join(fields)


class ResultNormalizer:
    """Turns validated engine output into locally stamped results."""

    def __init__(
        self,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._id_factory = id_factory
        self._clock = clock

    def normalize(
        self,
        raw: Mapping[str, Any],
        request: AnalysisRequest,
        *,
        operator: str,
        payload: Optional[EncodedPayload] = None,
    ) -> AnalysisResult:
        """Validate ``raw`` and build an :class:`AnalysisResult`.

        The remote ``language_match`` flag is advisory; the match is recomputed
        from ``detected_language`` and a mismatch forces the verdict off SAFE
        and the risk to at least MEDIUM.
        """
        try:
            remote = RemoteVerdict.model_validate(_flatten(raw))
        except ValidationError as exc:
            raise IncompleteSchemaError(_describe(exc)) from exc

        target = request.target_language
        language_match = target.matches(remote.detected_language)
        if language_match != remote.language_match:
            logger.warning(
                "Remote language_match=%s disagrees with local check (target=%s, detected=%s)",
                remote.language_match, target.value, remote.detected_language,
            )
        verdict, risk = remote.final_verdict, remote.risk_level
        if not language_match:
            verdict, risk = apply_mismatch_override(verdict, risk)

        return AnalysisResult(
            id=self._id_factory(),
            timestamp=self._clock().isoformat(),
            verdict=verdict,
            confidence_score=clamp_confidence(remote.confidence_score),
            risk_level=risk,
            detected_language=remote.detected_language,
            target_language=target,
            language_match=language_match,
            layers=remote.analysis_layers,
            safety_actions=tuple(dict.fromkeys(remote.safety_actions)),
            operator=operator,
            classification=remote.classification,
            scam_patterns=tuple(remote.scam_patterns),
            forensic_report=remote.forensic_report,
            evidence_sha256=payload.sha256 if payload is not None else None,
        )

    def normalize_live(
        self, raw: Mapping[str, Any], target_language: SupportedLanguage, sequence: int,
    ) -> LiveUpdate:
        try:
            remote = RemoteLiveUpdate.model_validate(raw)
        except ValidationError as exc:
            raise IncompleteSchemaError(_describe(exc)) from exc
        # auto-detect has no target to disagree with
        mismatch = target_language is not SupportedLanguage.AUTO and (
            remote.is_mismatch
            or (bool(remote.detected_language) and not target_language.matches(remote.detected_language or ""))
        )
        verdict = remote.verdict
        if mismatch and verdict is Verdict.SAFE:
            verdict = Verdict.CAUTION
        return LiveUpdate(
            sequence=sequence,
            verdict=verdict,
            confidence=clamp_confidence(remote.confidence),
            current_intent=remote.current_intent,
            is_mismatch=mismatch,
            detected_language=remote.detected_language,
        )
