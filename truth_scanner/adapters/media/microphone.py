"""Microphone capture through PortAudio (sounddevice)."""
from __future__ import annotations

import asyncio
import importlib
import importlib.util
import io
import logging
import threading
import wave
from typing import Any, List, Optional, Sequence

_sd_module = importlib.util.find_spec("sounddevice")
sd: Any = None
if _sd_module is not None:  # pragma: no cover - optional dependency
    try:
        sd = importlib.import_module("sounddevice")
    except OSError:  # PortAudio shared library missing
        sd = None

from truth_scanner.domain.exceptions import HardwareError
from truth_scanner.ports.media import ChunkCallback, MediaStream, MicrophonePort

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
SAMPLE_WIDTH = 2  # int16


def pcm_to_wav(pcm16: bytes, sample_rate: int = SAMPLE_RATE) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm16)
    return buffer.getvalue()


def wav_to_pcm(blob: bytes) -> bytes:
    with wave.open(io.BytesIO(blob), "rb") as wf:
        return wf.readframes(wf.getnframes())


class SoundDeviceStream(MediaStream):
    """Mono 16 kHz input stream emitting WAV chunks.

    PortAudio invokes the capture callback on its own thread; chunks produced
    there are handed to the asyncio loop with ``call_soon_threadsafe``.
    """

    mime_type = "audio/wav"

    def __init__(
        self,
        device: Optional[int | str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        sample_rate: int = SAMPLE_RATE,
    ) -> None:
        self._device = device
        self._loop = loop
        self._sample_rate = sample_rate
        self._lock = threading.Lock()
        self._buffer: List[bytes] = []
        self._buffered_frames = 0
        self._chunk_frames: Optional[int] = None
        self._on_chunk: Optional[ChunkCallback] = None
        self._stream: Any = None
        self._recording = False

    def start(self, on_chunk: ChunkCallback, timeslice: Optional[float] = None) -> None:
        if self._recording:
            return
        if sd is None:
            raise HardwareError("sounddevice library is not available")
        self._on_chunk = on_chunk
        self._chunk_frames = int(timeslice * self._sample_rate) if timeslice else None
        try:
            self._stream = sd.InputStream(
                samplerate=self._sample_rate,
                channels=1,
                dtype="int16",
                device=self._device,
                callback=self._capture,
            )
            self._stream.start()
        except Exception as exc:
            self._stream = None
            raise HardwareError(f"Microphone could not be started: {exc}") from exc
        self._recording = True

    def _capture(self, indata: Any, frames: int, _time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        with self._lock:
            self._buffer.append(indata[:, 0].tobytes())
            self._buffered_frames += frames
            ready = self._chunk_frames is not None and self._buffered_frames >= self._chunk_frames
            pcm = self._drain_locked() if ready else b""
        if pcm:
            self._dispatch_threadsafe(pcm_to_wav(pcm, self._sample_rate))

    def _drain_locked(self) -> bytes:
        pcm = b"".join(self._buffer)
        self._buffer = []
        self._buffered_frames = 0
        return pcm

    def _dispatch_threadsafe(self, chunk: bytes) -> None:
        callback = self._on_chunk
        if callback is None:
            return
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, chunk)
        else:
            callback(chunk)

    def stop(self) -> None:
        if not self._recording:
            return
        self._recording = False
        if self._stream is not None:
            self._stream.stop()
        with self._lock:
            pcm = self._drain_locked()
        # stop() runs on the caller's thread, so the final chunk is delivered inline
        if pcm and self._on_chunk is not None:
            self._on_chunk(pcm_to_wav(pcm, self._sample_rate))

    def release(self) -> None:
        stream, self._stream = self._stream, None
        self._recording = False
        self._on_chunk = None
        if stream is None:
            return
        try:
            stream.abort()
        finally:
            stream.close()
        logger.info("Microphone released")

    def merge_chunks(self, chunks: Sequence[bytes]) -> bytes:
        if not chunks:
            return b""
        return pcm_to_wav(b"".join(wav_to_pcm(chunk) for chunk in chunks), self._sample_rate)


class SoundDeviceMicrophone(MicrophonePort):
    """Acquires the default (or a named) PortAudio input device."""

    def __init__(self, device: Optional[int | str] = None, sample_rate: int = SAMPLE_RATE) -> None:
        self._device = device
        self._sample_rate = sample_rate

    def acquire(self) -> MediaStream:
        if sd is None:
            raise HardwareError("sounddevice library is not available")
        try:
            sd.query_devices(self._device, kind="input")
        except Exception as exc:
            raise HardwareError(f"No usable input device: {exc}") from exc
        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        return SoundDeviceStream(device=self._device, loop=loop, sample_rate=self._sample_rate)
