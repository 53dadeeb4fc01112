"""Microphone capture port."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

ChunkCallback = Callable[[bytes], None]


class MediaStream(ABC):
    """An acquired microphone stream."""

    mime_type: str

    @abstractmethod
    def start(self, on_chunk: ChunkCallback, timeslice: Optional[float] = None) -> None:
        """Begin recording.

        With ``timeslice`` set, ``on_chunk`` receives a self-contained chunk
        every ``timeslice`` seconds; otherwise one chunk is emitted on :meth:`stop`.
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop recording and flush the final chunk to ``on_chunk``."""

    @abstractmethod
    def release(self) -> None:
        """Stop all tracks and free the device. Safe to call repeatedly."""

    def merge_chunks(self, chunks: Sequence[bytes]) -> bytes:
        """Merge emitted chunks into one blob of :attr:`mime_type`."""

        return b"".join(chunks)


class MicrophonePort(ABC):
    """Acquires microphone streams."""

    @abstractmethod
    def acquire(self) -> MediaStream:
        """Return a stream or raise :class:`HardwareError`."""
