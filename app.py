"""Gradio operator console wired to the truth scanner services.

``demo`` is the Gradio UI; ``api_app`` is the FastAPI application
(``uvicorn app:api_app``). Both share one history store.
"""
from __future__ import annotations

import logging
import os
import tempfile
from typing import Dict, List, Optional, Tuple

import gradio as gr
import pandas as pd

from truth_scanner.adapters.ai.gemini import GeminiAnalysisAdapter
from truth_scanner.adapters.http.fetch import RequestsFetchAdapter
from truth_scanner.adapters.media.microphone import SoundDeviceMicrophone
from truth_scanner.adapters.secrets.env import EnvSecretsAdapter
from truth_scanner.adapters.storage.local import LocalStorageAdapter
from truth_scanner.api.http import create_api_app
from truth_scanner.config import DEFAULT_MODEL, HISTORY_DIR, LIVE_MODEL, PROMPTS
from truth_scanner.domain.exceptions import (
    AuthenticationError,
    InvalidTransitionError,
    SecretsError,
    TruthScannerError,
)
from truth_scanner.domain.models import (
    AnalysisResult,
    CaptureState,
    HistoryEntry,
    HistoryStats,
    InputSource,
    PlainText,
    RemoteURL,
    Role,
    SessionContext,
    SupportedLanguage,
    UploadedFile,
    Verdict,
)
from truth_scanner.services.client import RemoteAnalysisClient
from truth_scanner.services.dossier import dossier_file_name, export_dossier
from truth_scanner.services.encoder import TransportEncoder
from truth_scanner.services.history import HistoryStore
from truth_scanner.services.orchestrator import AnalysisOrchestrator
from truth_scanner.services.prompt import PromptService
from truth_scanner.services.session import SessionService

logging.basicConfig(
    level=os.environ.get("TRUTH_SCANNER_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("truth_scanner.app")

LANG_OPTIONS = [("Auto-detect", SupportedLanguage.AUTO.value)] + [
    (f"{lang.value} ({lang.locale})", lang.value)
    for lang in SupportedLanguage
    if lang is not SupportedLanguage.AUTO
]
HISTORY_COLUMNS = ["Stored", "Operator", "Verdict", "Risk", "Confidence", "Language", "Id"]
VERDICT_BADGES = {
    Verdict.SAFE: "🟢 SAFE",
    Verdict.CAUTION: "🟡 CAUTION",
    Verdict.AI_GENERATED_FRAUD: "🔴 AI GENERATED FRAUD",
    Verdict.BLOCK_NOW: "⛔ BLOCK NOW",
}


# ----------------------------------------------------------------------------
# Dependency wiring
# ----------------------------------------------------------------------------
secrets_adapter = EnvSecretsAdapter(prefix="TRUTH_SCANNER")
storage_adapter = LocalStorageAdapter(HISTORY_DIR)
history_store = HistoryStore(storage_adapter)
prompt_service = PromptService(PROMPTS)
encoder = TransportEncoder(RequestsFetchAdapter())
session_service = SessionService(secrets_adapter)
microphone = SoundDeviceMicrophone()


def _build_client() -> Optional[RemoteAnalysisClient]:
    api_key = secrets_adapter.get_optional_secret("GEMINI_API_KEY") or secrets_adapter.get_optional_secret(
        "GOOGLE_API_KEY"
    )
    if not api_key:
        logger.warning("No Gemini API key configured; analysis is disabled")
        return None
    try:
        engine = GeminiAnalysisAdapter(api_key=api_key, model=DEFAULT_MODEL)
        live_engine = GeminiAnalysisAdapter(api_key=api_key, model=LIVE_MODEL)
    except TruthScannerError as exc:
        logger.warning("Gemini adapter unavailable: %s", exc)
        return None
    return RemoteAnalysisClient(engine, prompt_service, live_engine=live_engine)


analysis_client = _build_client()
_orchestrators: Dict[str, AnalysisOrchestrator] = {}


def build_orchestrator(session: SessionContext) -> AnalysisOrchestrator:
    """Return a fresh orchestrator for ``session``."""

    if analysis_client is None:
        raise SecretsError("GEMINI_API_KEY is not configured")
    return AnalysisOrchestrator(session, encoder, analysis_client, history_store, microphone=microphone)


def orchestrator_for(session: SessionContext) -> AnalysisOrchestrator:
    """Return the console orchestrator of ``session``'s operator."""

    orchestrator = _orchestrators.get(session.operator)
    if orchestrator is None:
        orchestrator = build_orchestrator(session)
        _orchestrators[session.operator] = orchestrator
    return orchestrator


api_app = create_api_app(build_orchestrator, history_store)


# ----------------------------------------------------------------------------
# Rendering helpers
# ----------------------------------------------------------------------------
def _session_from_state(state: Optional[dict]) -> Optional[SessionContext]:
    if not state:
        return None
    return SessionContext.model_validate(state)


def _parse_language(value: Optional[str]) -> SupportedLanguage:
    try:
        return SupportedLanguage(value or SupportedLanguage.AUTO.value)
    except ValueError:
        return SupportedLanguage.AUTO


def _pick_source(audio_path: Optional[str], url: Optional[str], text: Optional[str]) -> Optional[InputSource]:
    if audio_path:
        return UploadedFile(path=audio_path)
    if url and url.strip():
        return RemoteURL(url=url.strip())
    if text and text.strip():
        return PlainText(text=text)
    return None


def _result_markdown(result: AnalysisResult) -> str:
    lines = [
        f"## {VERDICT_BADGES[result.verdict]}",
        f"**Confidence:** {result.confidence_score:.0%} &nbsp; **Risk:** {result.risk_level.value}",
        f"**Detected language:** {result.detected_language} "
        f"(target: {result.target_language.value})",
    ]
    if not result.language_match:
        lines.append(
            "> ⚠️ **Language mismatch.** The sample does not match the selected language; "
            "the verdict was escalated and the result is not stored in history."
        )
    if result.classification is not None:
        lines.append(f"**Voice classification:** {result.classification.value}")
    if result.safety_actions:
        lines.append("**Recommended actions:** " + ", ".join(action.value for action in result.safety_actions))
    if result.scam_patterns:
        lines.append("**Scam patterns:** " + ", ".join(result.scam_patterns))
    if result.forensic_report:
        lines.append(f"\n{result.forensic_report}")
    lines.append(f"\n<sub>Result {result.id}</sub>")
    return "\n\n".join(lines)


def _layers_frame(result: Optional[AnalysisResult]) -> pd.DataFrame:
    if result is None:
        return pd.DataFrame(columns=["Layer", "Finding"])
    rows = [
        {"Layer": name.replace("_", " ").title(), "Finding": finding}
        for name, finding in result.layers.model_dump().items()
    ]
    return pd.DataFrame(rows, columns=["Layer", "Finding"])


def _history_frame(entries: List[HistoryEntry]) -> pd.DataFrame:
    rows = [
        {
            "Stored": entry.stored_at,
            "Operator": entry.operator,
            "Verdict": entry.verdict.value,
            "Risk": entry.risk_level.value,
            "Confidence": round(entry.confidence_score, 3),
            "Language": entry.detected_language,
            "Id": entry.id,
        }
        for entry in entries
    ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def _stats_markdown(stats: HistoryStats) -> str:
    return (
        f"**Scans:** {stats.total} &nbsp; **AI generated:** {stats.ai_generated} &nbsp; "
        f"**Human:** {stats.human} &nbsp; **High risk:** {stats.high_risk}"
    )


def _live_markdown(orchestrator: AnalysisOrchestrator) -> str:
    update = orchestrator.live_update
    if orchestrator.state is not CaptureState.LIVE_CALL:
        return f"Status: **{orchestrator.state.value}**"
    if update is None:
        return "📞 Listening… waiting for the first chunk."
    if update.failed:
        return f"📞 Chunk {update.sequence} could not be analysed: {update.error}"
    verdict = VERDICT_BADGES[update.verdict] if update.verdict else "pending"
    lines = [f"📞 Chunk {update.sequence}: {verdict} ({update.confidence:.0%})"]
    if update.current_intent:
        lines.append(f"Intent: {update.current_intent}")
    if update.is_mismatch:
        lines.append("⚠️ Speaker language does not match the selected language.")
    return "\n\n".join(lines)


# ----------------------------------------------------------------------------
# UI handlers
# ----------------------------------------------------------------------------
def ui_login(email: str, password: str):
    try:
        session = session_service.authenticate(email, password)
    except AuthenticationError as exc:
        return None, f"❌ {exc}", gr.update(visible=True), gr.update(visible=False)
    return (
        session.model_dump(mode="json"),
        f"✅ Signed in as **{session.operator}** ({session.role.value.lower()}).",
        gr.update(visible=False),
        gr.update(visible=True),
    )


def ui_logout(session_state: Optional[dict]):
    session = _session_from_state(session_state)
    if session is not None:
        orchestrator = _orchestrators.pop(session.operator, None)
        if orchestrator is not None:
            orchestrator.reset()
    return None, "Signed out.", gr.update(visible=True), gr.update(visible=False)


async def ui_scan(
    session_state: Optional[dict],
    audio_path: Optional[str],
    url: Optional[str],
    text: Optional[str],
    sms_text: Optional[str],
    language: Optional[str],
) -> Tuple[str, pd.DataFrame]:
    session = _session_from_state(session_state)
    if session is None:
        return "🔒 Sign in to run a scan.", _layers_frame(None)
    source = _pick_source(audio_path, url, text)
    if source is None:
        return "Record or upload audio, paste a media URL, or enter a message first.", _layers_frame(None)
    try:
        orchestrator = orchestrator_for(session)
        orchestrator.reset()
        result = await orchestrator.submit(source, _parse_language(language), (sms_text or "").strip() or None)
    except (SecretsError, InvalidTransitionError) as exc:
        return f"❌ {exc}", _layers_frame(None)
    if result is None:
        return f"❌ Analysis failed: {orchestrator.error or 'cancelled'}", _layers_frame(None)
    return _result_markdown(result), _layers_frame(result)


async def ui_start_live(session_state: Optional[dict], language: Optional[str]) -> str:
    session = _session_from_state(session_state)
    if session is None:
        return "🔒 Sign in to monitor a call."
    try:
        orchestrator = orchestrator_for(session)
        orchestrator.reset()
        await orchestrator.start_live_call(_parse_language(language))
    except (SecretsError, InvalidTransitionError) as exc:
        return f"❌ {exc}"
    if orchestrator.state is CaptureState.ERROR:
        return f"❌ {orchestrator.error}"
    return _live_markdown(orchestrator)


async def ui_stop_live(session_state: Optional[dict], summarize: bool) -> Tuple[str, str]:
    session = _session_from_state(session_state)
    orchestrator = _orchestrators.get(session.operator) if session is not None else None
    if orchestrator is None or orchestrator.state is not CaptureState.LIVE_CALL:
        return "No live call in progress.", ""
    result = await orchestrator.stop_live_call(summarize=summarize)
    if result is not None:
        return _live_markdown(orchestrator), _result_markdown(result)
    if orchestrator.state is CaptureState.ERROR:
        return _live_markdown(orchestrator), f"❌ Analysis failed: {orchestrator.error}"
    return _live_markdown(orchestrator), ""


def ui_live_status(session_state: Optional[dict]) -> str:
    session = _session_from_state(session_state)
    orchestrator = _orchestrators.get(session.operator) if session is not None else None
    if orchestrator is None:
        return ""
    return _live_markdown(orchestrator)


def ui_history(session_state: Optional[dict]):
    if _session_from_state(session_state) is None:
        return _history_frame([]), "🔒 Sign in to view history.", gr.update(choices=[], value=None)
    entries = history_store.list()
    choices = [(f"{entry.stored_at[:19]} · {entry.verdict.value}", entry.id) for entry in entries]
    return (
        _history_frame(entries),
        _stats_markdown(history_store.stats()),
        gr.update(choices=choices, value=choices[0][1] if choices else None),
    )


def ui_delete_entry(session_state: Optional[dict], entry_id: Optional[str]):
    if _session_from_state(session_state) is None or not entry_id:
        return ui_history(session_state)
    try:
        history_store.remove(entry_id)
    except TruthScannerError as exc:
        logger.error("Could not delete %s: %s", entry_id, exc)
    return ui_history(session_state)


def ui_clear_history(session_state: Optional[dict]):
    session = _session_from_state(session_state)
    if session is None or session.role is not Role.ADMIN:
        frame, _, picker = ui_history(session_state)
        return frame, "❌ Only administrators can clear the history.", picker
    try:
        history_store.clear()
    except TruthScannerError as exc:
        frame, _, picker = ui_history(session_state)
        return frame, f"❌ {exc}", picker
    return ui_history(session_state)


def ui_export(session_state: Optional[dict], entry_id: Optional[str]):
    if _session_from_state(session_state) is None:
        return gr.update(value=None, visible=False), "🔒 Sign in to export."
    entry = history_store.get(entry_id) if entry_id else None
    if entry is None:
        return gr.update(value=None, visible=False), "❌ Pick a stored result first."
    directory = tempfile.mkdtemp(prefix="dossier_")
    file_path = os.path.join(directory, dossier_file_name(entry))
    with open(file_path, "w", encoding="utf-8") as handle:
        handle.write(export_dossier(entry))
    return gr.update(value=file_path, visible=True), "✅ Dossier is ready to save."


with gr.Blocks(title="Voice Truth Scanner") as demo:
    gr.Markdown(
        """
        # Voice Truth Scanner
        *Forensic authenticity verdicts for recorded calls, voice notes and suspicious messages.*
        """
    )

    session_state = gr.State(None)
    status_md = gr.Markdown()

    with gr.Group(visible=True) as login_group:
        gr.Markdown("### 🔐 Sign in")
        email_tb = gr.Textbox(label="Email", lines=1)
        password_tb = gr.Textbox(label="Password", type="password", lines=1)
        login_btn = gr.Button("Sign in", variant="primary")

    with gr.Column(visible=False) as main_col:
        logout_btn = gr.Button("Sign out", scale=0)
        lang_dd = gr.Dropdown(choices=LANG_OPTIONS, value=SupportedLanguage.AUTO.value, label="Target language")
        with gr.Tabs():
            with gr.Tab("Scan"):
                audio_in = gr.Audio(label="Recording", sources=["microphone", "upload"], type="filepath")
                url_tb = gr.Textbox(label="Media URL", placeholder="https://…", lines=1)
                text_tb = gr.Textbox(label="Message text", lines=4)
                sms_tb = gr.Textbox(label="Accompanying SMS (optional)", lines=2)
                scan_btn = gr.Button("🔎 Analyze", variant="primary")
                result_md = gr.Markdown()
                layers_df = gr.Dataframe(value=_layers_frame(None), label="Forensic layers", interactive=False)

            with gr.Tab("Live call"):
                with gr.Row():
                    live_start_btn = gr.Button("📞 Start monitoring", variant="primary", scale=0)
                    live_stop_btn = gr.Button("Stop", scale=0)
                    live_summary_btn = gr.Button("Stop and analyze call", variant="secondary", scale=0)
                live_md = gr.Markdown()
                live_result_md = gr.Markdown()
                live_timer = gr.Timer(1.0)

            with gr.Tab("History"):
                refresh_btn = gr.Button("Refresh", scale=0)
                stats_md = gr.Markdown()
                history_df = gr.Dataframe(value=_history_frame([]), label="Stored results", interactive=False)
                entry_dd = gr.Dropdown(choices=[], label="Result", type="value")
                with gr.Row():
                    export_btn = gr.Button("📁 Export dossier", scale=0)
                    delete_btn = gr.Button("Delete", scale=0)
                    clear_btn = gr.Button("Clear history", variant="stop", scale=0)
                export_md = gr.Markdown()
                dossier_file = gr.File(label="Dossier", visible=False)

    login_btn.click(
        ui_login,
        inputs=[email_tb, password_tb],
        outputs=[session_state, status_md, login_group, main_col],
    ).then(
        ui_history,
        inputs=[session_state],
        outputs=[history_df, stats_md, entry_dd],
    )
    logout_btn.click(ui_logout, inputs=[session_state], outputs=[session_state, status_md, login_group, main_col])

    scan_btn.click(
        ui_scan,
        inputs=[session_state, audio_in, url_tb, text_tb, sms_tb, lang_dd],
        outputs=[result_md, layers_df],
    ).then(
        ui_history,
        inputs=[session_state],
        outputs=[history_df, stats_md, entry_dd],
    )

    live_start_btn.click(ui_start_live, inputs=[session_state, lang_dd], outputs=[live_md])
    live_stop_btn.click(
        ui_stop_live,
        inputs=[session_state, gr.State(False)],
        outputs=[live_md, live_result_md],
    )
    live_summary_btn.click(
        ui_stop_live,
        inputs=[session_state, gr.State(True)],
        outputs=[live_md, live_result_md],
    ).then(
        ui_history,
        inputs=[session_state],
        outputs=[history_df, stats_md, entry_dd],
    )
    live_timer.tick(ui_live_status, inputs=[session_state], outputs=[live_md])

    refresh_btn.click(ui_history, inputs=[session_state], outputs=[history_df, stats_md, entry_dd])
    delete_btn.click(ui_delete_entry, inputs=[session_state, entry_dd], outputs=[history_df, stats_md, entry_dd])
    clear_btn.click(ui_clear_history, inputs=[session_state], outputs=[history_df, stats_md, entry_dd])
    export_btn.click(ui_export, inputs=[session_state, entry_dd], outputs=[dossier_file, export_md])


if __name__ == "__main__":
    demo.launch()
