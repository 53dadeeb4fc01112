"""Capture/analysis state machine.

States::

    IDLE -> RECORDING | LIVE_CALL | UPLOADING
    RECORDING -> ANALYZING
    UPLOADING -> ANALYZING
    LIVE_CALL -> IDLE | ANALYZING (wrap-up)
    ANALYZING -> COMPLETED | ERROR
    any -> IDLE (reset)

Every transition runs to completion on the event loop. A pipeline that is
still awaiting I/O when :meth:`AnalysisOrchestrator.reset` is called keeps
running, but its outcome is discarded: each pipeline captures the generation
counter at start and compares it after every await.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from truth_scanner.config import LIVE_CHUNK_SECONDS
from truth_scanner.domain.exceptions import (
    HardwareError,
    InvalidTransitionError,
    StorageError,
    TruthScannerError,
)
from truth_scanner.domain.models import (
    AnalysisRequest,
    AnalysisResult,
    CaptureState,
    InputSource,
    LiveUpdate,
    MicrophoneStream,
    SessionContext,
    SupportedLanguage,
)
from truth_scanner.ports.media import MediaStream, MicrophonePort
from truth_scanner.services.client import RemoteAnalysisClient
from truth_scanner.services.encoder import TransportEncoder
from truth_scanner.services.history import HistoryStore
from truth_scanner.services.live import LiveSession

logger = logging.getLogger(__name__)


class OrchestratorSnapshot(BaseModel):
    """Read-only view handed to listeners and UIs."""

    state: CaptureState
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    live_update: Optional[LiveUpdate] = None
    operator: str


Listener = Callable[[OrchestratorSnapshot], None]


class AnalysisOrchestrator:
    """Drives one operator's capture -> analysis -> result lifecycle."""

    def __init__(
        self,
        session: SessionContext,
        encoder: TransportEncoder,
        client: RemoteAnalysisClient,
        history: HistoryStore,
        microphone: Optional[MicrophonePort] = None,
        live_chunk_seconds: float = LIVE_CHUNK_SECONDS,
    ) -> None:
        self._session = session
        self._encoder = encoder
        self._client = client
        self._history = history
        self._microphone = microphone
        self._live_chunk_seconds = live_chunk_seconds

        self._state = CaptureState.IDLE
        self._result: Optional[AnalysisResult] = None
        self._error: Optional[str] = None
        self._generation = 0
        self._chunks: List[bytes] = []
        self._buffered_bytes = 0
        self._stream: Optional[MediaStream] = None
        self._live: Optional[LiveSession] = None
        self._live_update: Optional[LiveUpdate] = None
        self._live_listener: Optional[Callable[[LiveUpdate], None]] = None
        self._target_language = SupportedLanguage.AUTO
        self._auxiliary_text: Optional[str] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def result(self) -> Optional[AnalysisResult]:
        return self._result

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def live_update(self) -> Optional[LiveUpdate]:
        return self._live_update

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def history(self) -> HistoryStore:
        return self._history

    def snapshot(self) -> OrchestratorSnapshot:
        return OrchestratorSnapshot(
            state=self._state,
            result=self._result,
            error=self._error,
            live_update=self._live_update,
            operator=self._session.operator,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for state changes; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _transition(self, state: CaptureState) -> None:
        logger.info("[%s] %s -> %s", self._session.operator, self._state.value, state.value)
        self._state = state
        self._notify()

    def _require(self, expected: CaptureState, action: str) -> None:
        if self._state is not expected:
            raise InvalidTransitionError(f"Cannot {action} while {self._state.value}")

    def _fail(self, message: str) -> None:
        logger.error("[%s] analysis failed: %s", self._session.operator, message)
        self._error = message
        self._transition(CaptureState.ERROR)

    def _is_stale(self, token: int) -> bool:
        if token != self._generation:
            logger.debug("Ignoring stale pipeline %d (current %d)", token, self._generation)
            return True
        return False

    def _acquire(self) -> MediaStream:
        if self._microphone is None:
            raise HardwareError("No microphone is configured")
        return self._microphone.acquire()

    def _release_capture(self) -> None:
        if self._live is not None:
            self._live.close()
            self._live = None
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.release()

    def _clear_chunks(self) -> List[bytes]:
        chunks, self._chunks = self._chunks, []
        self._buffered_bytes = 0
        return chunks

    def _open_stream(self, action: str) -> MediaStream:
        if self._stream is None:
            raise InvalidTransitionError(f"Cannot {action}: no capture stream is open")
        return self._stream

    def _begin_capture(self, target_language: SupportedLanguage, auxiliary_text: Optional[str]) -> Optional[MediaStream]:
        try:
            stream = self._acquire()
        except HardwareError as exc:
            self._fail(str(exc))
            return None
        self._stream = stream
        self._clear_chunks()
        self._target_language = target_language
        self._auxiliary_text = auxiliary_text
        self._result = None
        self._error = None
        return stream

    def start_recording(
        self,
        target_language: SupportedLanguage = SupportedLanguage.AUTO,
        auxiliary_text: Optional[str] = None,
    ) -> None:
        """IDLE -> RECORDING; a second call while recording is ignored."""

        if self._state is CaptureState.RECORDING:
            return
        self._require(CaptureState.IDLE, "start recording")
        stream = self._begin_capture(target_language, auxiliary_text)
        if stream is None:
            return
        try:
            stream.start(self._chunks.append)
        except HardwareError as exc:
            self._release_capture()
            self._fail(str(exc))
            return
        self._transition(CaptureState.RECORDING)

    async def stop_recording(self) -> Optional[AnalysisResult]:
        """RECORDING -> ANALYZING with the merged recording."""

        self._require(CaptureState.RECORDING, "stop recording")
        stream = self._open_stream("stop recording")
        stream.stop()
        content = stream.merge_chunks(self._clear_chunks())
        self._release_capture()
        request = AnalysisRequest(
            source=MicrophoneStream(content=content, mime_type=stream.mime_type),
            target_language=self._target_language,
            auxiliary_text=self._auxiliary_text,
        )
        return await self._run(request, CaptureState.ANALYZING)

    async def submit(
        self,
        source: InputSource,
        target_language: SupportedLanguage = SupportedLanguage.AUTO,
        auxiliary_text: Optional[str] = None,
    ) -> Optional[AnalysisResult]:
        """IDLE -> UPLOADING -> ANALYZING for a file, URL or text source.

        Returns the result, or ``None`` when the pipeline failed or was
        abandoned by :meth:`reset`; :attr:`state` tells which.
        """
        self._require(CaptureState.IDLE, "submit")
        request = AnalysisRequest(source=source, target_language=target_language, auxiliary_text=auxiliary_text)
        return await self._run(request, CaptureState.UPLOADING)

    async def start_live_call(
        self,
        target_language: SupportedLanguage = SupportedLanguage.AUTO,
        on_update: Optional[Callable[[LiveUpdate], None]] = None,
    ) -> None:
        """IDLE -> LIVE_CALL; chunks are analysed every ``live_chunk_seconds``."""

        if self._state is CaptureState.LIVE_CALL:
            return
        self._require(CaptureState.IDLE, "start a live call")
        stream = self._begin_capture(target_language, None)
        if stream is None:
            return
        self._live_update = None
        self._live_listener = on_update
        self._live = self._client.open_live_session(
            target_language, self._on_live_update, encoder=self._encoder, mime_type=stream.mime_type,
        )
        try:
            stream.start(self._on_live_chunk, timeslice=self._live_chunk_seconds)
        except HardwareError as exc:
            self._release_capture()
            self._fail(str(exc))
            return
        self._transition(CaptureState.LIVE_CALL)

    def _on_live_chunk(self, chunk: bytes) -> None:
        if self._state is not CaptureState.LIVE_CALL:
            logger.debug("Dropping %d-byte chunk delivered outside a live call", len(chunk))
            return
        self._buffer_live_chunk(chunk)
        if self._live is not None:
            self._live.process_chunk(chunk)

    def _buffer_live_chunk(self, chunk: bytes) -> None:
        # keep only the most recent audio that still fits one summary payload
        limit = self._encoder.max_payload_bytes
        self._chunks.append(chunk)
        self._buffered_bytes += len(chunk)
        while self._buffered_bytes > limit and self._chunks:
            dropped = self._chunks.pop(0)
            self._buffered_bytes -= len(dropped)
            logger.debug("Live buffer full, dropped %d oldest bytes", len(dropped))

    def _on_live_update(self, update: LiveUpdate) -> None:
        if self._state is not CaptureState.LIVE_CALL:
            return
        self._live_update = update
        if self._live_listener is not None:
            self._live_listener(update)
        self._notify()

    async def stop_live_call(self, summarize: bool = False) -> Optional[AnalysisResult]:
        """Release the microphone; optionally analyse the whole call.

        Tracks are released before this coroutine first yields. With
        ``summarize`` the captured chunks are merged and analysed as one
        recording (LIVE_CALL -> ANALYZING); otherwise the state returns to IDLE.
        """
        self._require(CaptureState.LIVE_CALL, "stop a live call")
        stream = self._open_stream("stop a live call")
        if self._live is not None:
            self._live.close()
            self._live = None
        if summarize:
            stream.stop()
        self._release_capture()
        chunks = self._clear_chunks()
        self._live_listener = None
        if not summarize or not chunks:
            self._transition(CaptureState.IDLE)
            return None
        request = AnalysisRequest(
            source=MicrophoneStream(content=stream.merge_chunks(chunks), mime_type=stream.mime_type),
            target_language=self._target_language,
        )
        return await self._run(request, CaptureState.ANALYZING)

    async def _run(self, request: AnalysisRequest, initial: CaptureState) -> Optional[AnalysisResult]:
        self._generation += 1
        token = self._generation
        self._result = None
        self._error = None
        self._transition(initial)
        try:
            payload = await self._encoder.encode(request.source, request.auxiliary_text)
            if self._is_stale(token):
                return None
            if self._state is not CaptureState.ANALYZING:
                self._transition(CaptureState.ANALYZING)
            result = await self._client.submit(payload, request, operator=self._session.operator)
        except TruthScannerError as exc:
            if not self._is_stale(token):
                self._fail(str(exc))
            return None
        except Exception as exc:
            logger.exception("Unexpected failure in analysis pipeline")
            if not self._is_stale(token):
                self._fail(f"Unexpected failure: {exc}")
            return None
        if self._is_stale(token):
            return None
        self._result = result
        if result.language_match:
            try:
                self._history.append(result)
            except StorageError as exc:
                logger.error("Result %s not persisted: %s", result.id, exc)
        self._transition(CaptureState.COMPLETED)
        return result

    def reset(self) -> None:
        """Return to IDLE from any state, abandoning in-flight work."""

        if (
            self._state is CaptureState.IDLE
            and self._result is None
            and self._error is None
            and not self._chunks
        ):
            return
        self._generation += 1
        self._release_capture()
        self._clear_chunks()
        self._result = None
        self._error = None
        self._live_update = None
        self._live_listener = None
        self._transition(CaptureState.IDLE)
