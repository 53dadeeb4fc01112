"""Domain models for the Truth Scanner application."""
from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class SupportedLanguage(str, Enum):
    """Target languages an operator can select."""

    AUTO = "auto"
    TAMIL = "Tamil"
    ENGLISH = "English"
    HINDI = "Hindi"
    MALAYALAM = "Malayalam"
    TELUGU = "Telugu"

    @property
    def locale(self) -> Optional[str]:
        return LANGUAGE_LOCALES.get(self)

    def matches(self, detected: str) -> bool:
        """Return whether ``detected`` names this language.

        Auto-detect always matches. Otherwise the language name, a known
        mixed-language alias or the locale code must appear in ``detected``.
        """
        if self is SupportedLanguage.AUTO:
            return True
        text = (detected or "").strip().lower()
        if not text:
            return False
        if self.value.lower() in text:
            return True
        tokens = set(re.split(r"[^a-z]+", text))
        if tokens & set(LANGUAGE_ALIASES.get(self, ())):
            return True
        locale = LANGUAGE_LOCALES[self].lower()
        return locale in text or locale.split("-")[0] in tokens


LANGUAGE_LOCALES: Dict[SupportedLanguage, str] = {
    SupportedLanguage.TAMIL: "ta-IN",
    SupportedLanguage.ENGLISH: "en-US",
    SupportedLanguage.HINDI: "hi-IN",
    SupportedLanguage.MALAYALAM: "ml-IN",
    SupportedLanguage.TELUGU: "te-IN",
}

LANGUAGE_ALIASES: Dict[SupportedLanguage, Tuple[str, ...]] = {
    SupportedLanguage.TAMIL: ("tanglish",),
    SupportedLanguage.ENGLISH: ("tanglish", "hinglish"),
    SupportedLanguage.HINDI: ("hinglish",),
}


class Verdict(str, Enum):
    """Top-level outcome of an analysis."""

    SAFE = "SAFE"
    CAUTION = "CAUTION"
    AI_GENERATED_FRAUD = "AI_GENERATED_FRAUD"
    BLOCK_NOW = "BLOCK_NOW"

    @property
    def severity(self) -> int:
        return _VERDICT_SEVERITY[self]


_VERDICT_SEVERITY = {
    Verdict.SAFE: 0,
    Verdict.CAUTION: 1,
    Verdict.AI_GENERATED_FRAUD: 2,
    Verdict.BLOCK_NOW: 2,
}


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return ("LOW", "MEDIUM", "HIGH").index(self.value)


class SafetyAction(str, Enum):
    IGNORE = "IGNORE"
    BLOCK = "BLOCK"
    REPORT = "REPORT"


class Classification(str, Enum):
    AI_GENERATED = "AI_GENERATED"
    HUMAN = "HUMAN"


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class CaptureState(str, Enum):
    """States of the capture/analysis lifecycle."""

    IDLE = "IDLE"
    RECORDING = "RECORDING"
    LIVE_CALL = "LIVE_CALL"
    UPLOADING = "UPLOADING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


def _enum_token(value: Any) -> Any:
    """Normalise loose enum spellings such as ``"block now"`` to ``"BLOCK_NOW"``."""

    if isinstance(value, str):
        return re.sub(r"[\s\-]+", "_", value.strip()).upper()
    return value


class SessionContext(BaseModel):
    """Identity of the operator driving an orchestrator."""

    model_config = ConfigDict(frozen=True)

    operator: str
    role: Role = Role.USER


# ---------------------------------------------------------------------------
# Input sources
# ---------------------------------------------------------------------------


class MicrophoneStream(BaseModel):
    """Audio captured from the microphone, already merged into one blob."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["microphone"] = "microphone"
    content: bytes
    mime_type: Optional[str] = None


class UploadedFile(BaseModel):
    """An audio file given either as a path on disk or as raw bytes."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    path: Optional[str] = None
    content: Optional[bytes] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None

    @model_validator(mode="after")
    def _require_path_or_content(self) -> "UploadedFile":
        if self.path is None and self.content is None:
            raise ValueError("UploadedFile requires either a path or content")
        return self


class RemoteURL(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["url"] = "url"
    url: NonEmptyStr


class PlainText(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


InputSource = Annotated[
    Union[MicrophoneStream, UploadedFile, RemoteURL, PlainText],
    Field(discriminator="kind"),
]


class AnalysisRequest(BaseModel):
    """A single submission; immutable once built."""

    model_config = ConfigDict(frozen=True)

    source: InputSource
    target_language: SupportedLanguage = SupportedLanguage.AUTO
    auxiliary_text: Optional[str] = Field(
        default=None, description="Accompanying text (e.g. SMS) used for cross-verification.",
    )


class EncodedPayload(BaseModel):
    """Transport-ready representation of a source."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["audio", "text"]
    data: str = Field(..., min_length=1, description="Base64 audio or raw text.")
    mime_type: Optional[str] = None
    auxiliary_text: Optional[str] = None
    byte_size: int = Field(..., ge=0, description="Size of the decoded source in bytes.")
    sha256: str = Field(..., description="Digest of the decoded source.")

    @model_validator(mode="after")
    def _audio_requires_mime(self) -> "EncodedPayload":
        if self.kind == "audio" and not self.mime_type:
            raise ValueError("Audio payloads require a MIME type")
        return self


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ForensicLayers(BaseModel):
    """The six explanatory forensic dimensions returned by the engine."""

    model_config = ConfigDict(frozen=True)

    spatial_acoustics: NonEmptyStr
    emotional_micro_dynamics: NonEmptyStr
    cultural_linguistics: NonEmptyStr
    breath_emotion_sync: NonEmptyStr
    spectral_artifacts: NonEmptyStr
    code_switching: NonEmptyStr


class RemoteVerdict(BaseModel):
    """Wire contract of a single-shot analysis response."""

    final_verdict: Verdict
    confidence_score: float
    risk_level: RiskLevel
    detected_language: NonEmptyStr
    language_match: bool
    analysis_layers: ForensicLayers
    safety_actions: List[SafetyAction]
    classification: Optional[Classification] = None
    scam_patterns: List[str] = Field(default_factory=list)
    forensic_report: Optional[str] = None

    @field_validator("final_verdict", "risk_level", "classification", mode="before")
    @classmethod
    def _normalise_enum(cls, value: Any) -> Any:
        return _enum_token(value)

    @field_validator("safety_actions", mode="before")
    @classmethod
    def _normalise_actions(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_enum_token(item) for item in value]
        return value


class RemoteLiveUpdate(BaseModel):
    """Wire contract of a live-call chunk response."""

    verdict: Verdict
    confidence: float
    current_intent: str = ""
    detected_language: Optional[str] = None
    is_mismatch: bool = False

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalise_verdict(cls, value: Any) -> Any:
        return _enum_token(value)


class AnalysisResult(BaseModel):
    """Canonical, locally stamped analysis outcome."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: str
    verdict: Verdict
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel
    detected_language: str
    target_language: SupportedLanguage = SupportedLanguage.AUTO
    language_match: bool
    layers: ForensicLayers
    safety_actions: Tuple[SafetyAction, ...] = ()
    operator: str
    classification: Optional[Classification] = None
    scam_patterns: Tuple[str, ...] = ()
    forensic_report: Optional[str] = None
    evidence_sha256: Optional[str] = None

    @model_validator(mode="after")
    def _mismatch_is_never_safe(self) -> "AnalysisResult":
        if not self.language_match and (
            self.verdict is Verdict.SAFE or self.risk_level is RiskLevel.LOW
        ):
            raise ValueError("Language-mismatched results cannot be SAFE or LOW risk")
        return self


class HistoryEntry(AnalysisResult):
    """An :class:`AnalysisResult` as persisted by the history store."""

    stored_at: str


class HistoryStats(BaseModel):
    total: int = 0
    ai_generated: int = 0
    human: int = 0
    high_risk: int = 0
    by_verdict: Dict[str, int] = Field(default_factory=dict)


class LiveUpdate(BaseModel):
    """Rolling, non-persisted update for one live-call chunk."""

    model_config = ConfigDict(frozen=True)

    sequence: int
    verdict: Optional[Verdict] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    current_intent: str = ""
    is_mismatch: bool = False
    detected_language: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None
