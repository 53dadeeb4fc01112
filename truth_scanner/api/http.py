"""FastAPI application exposing analysis and history endpoints."""
from __future__ import annotations

import base64
import binascii
from typing import Callable, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, model_validator

from truth_scanner.domain.exceptions import TruthScannerError
from truth_scanner.domain.models import (
    AnalysisResult,
    CaptureState,
    HistoryEntry,
    HistoryStats,
    InputSource,
    PlainText,
    RemoteURL,
    SessionContext,
    SupportedLanguage,
    UploadedFile,
)
from truth_scanner.services.history import HistoryStore
from truth_scanner.services.orchestrator import AnalysisOrchestrator

OrchestratorFactory = Callable[[SessionContext], AnalysisOrchestrator]


class AnalysisBody(BaseModel):
    """Request body for the analysis endpoint; exactly one source field is set."""

    text: Optional[str] = None
    url: Optional[str] = None
    audio_base64: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    language: SupportedLanguage = SupportedLanguage.AUTO
    sms_text: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "AnalysisBody":
        provided = [name for name in ("text", "url", "audio_base64") if getattr(self, name)]
        if len(provided) != 1:
            raise ValueError("Provide exactly one of text, url or audio_base64")
        return self


class AnalysisResponse(BaseModel):
    state: CaptureState
    result: Optional[AnalysisResult] = None
    stored: bool = False


def _to_source(body: AnalysisBody) -> InputSource:
    if body.text:
        return PlainText(text=body.text)
    if body.url:
        return RemoteURL(url=body.url)
    try:
        content = base64.b64decode(body.audio_base64 or "", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail="audio_base64 is not valid base64") from exc
    return UploadedFile(content=content, file_name=body.file_name, mime_type=body.mime_type)


def create_api_app(orchestrator_factory: OrchestratorFactory, history: HistoryStore) -> FastAPI:
    """Create a configured FastAPI application."""

    app = FastAPI(title="Voice Truth Scanner API")

    @app.post("/analysis", response_model=AnalysisResponse)
    async def analyze(body: AnalysisBody, x_operator: str = Header(default="api")) -> AnalysisResponse:
        try:
            orchestrator = orchestrator_factory(SessionContext(operator=x_operator))
        except TruthScannerError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        result = await orchestrator.submit(_to_source(body), body.language, body.sms_text)
        if result is None:
            raise HTTPException(status_code=422, detail=orchestrator.error or "Analysis failed")
        return AnalysisResponse(
            state=orchestrator.state,
            result=result,
            stored=history.get(result.id) is not None,
        )

    @app.get("/history", response_model=List[HistoryEntry])
    def list_history() -> List[HistoryEntry]:
        return history.list()

    @app.get("/history/stats", response_model=HistoryStats)
    def history_stats() -> HistoryStats:
        return history.stats()

    @app.get("/history/{entry_id}", response_model=HistoryEntry)
    def get_entry(entry_id: str) -> HistoryEntry:
        entry = history.get(entry_id)
        if entry is None:
            raise HTTPException(status_code=404, detail=f"No history entry {entry_id}")
        return entry

    @app.delete("/history/{entry_id}", status_code=204)
    def delete_entry(entry_id: str) -> None:
        if not history.remove(entry_id):
            raise HTTPException(status_code=404, detail=f"No history entry {entry_id}")

    @app.delete("/history", status_code=204)
    def clear_history() -> None:
        history.clear()

    @app.get("/languages")
    def languages() -> Dict[str, str]:
        return {lang.value: lang.locale or "auto" for lang in SupportedLanguage}

    return app
