"""Transport encoder turning input sources into engine payloads."""
from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import mimetypes
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from truth_scanner.config import DEFAULT_AUDIO_MIME_TYPE, MAX_PAYLOAD_BYTES
from truth_scanner.domain.exceptions import PayloadTooLargeError, UnreadableSourceError
from truth_scanner.domain.models import (
    EncodedPayload,
    InputSource,
    MicrophoneStream,
    PlainText,
    RemoteURL,
    UploadedFile,
)
from truth_scanner.ports.fetch import FetchedMedia, RemoteFetchPort

logger = logging.getLogger(__name__)


class TransportEncoder:
    """Reads, size-checks and encodes sources. No analysis calls happen here."""

    def __init__(
        self,
        fetcher: RemoteFetchPort,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        default_mime_type: str = DEFAULT_AUDIO_MIME_TYPE,
    ) -> None:
        self._fetcher = fetcher
        self._max_bytes = max_payload_bytes
        self._default_mime_type = default_mime_type

    @property
    def max_payload_bytes(self) -> int:
        return self._max_bytes

    async def encode(self, source: InputSource, auxiliary_text: Optional[str] = None) -> EncodedPayload:
        """Return the payload for ``source`` or raise an :class:`EncodingError`."""

        if isinstance(source, PlainText):
            return self._encode_text(source.text, auxiliary_text)
        if isinstance(source, RemoteURL):
            fetched = await asyncio.to_thread(self._fetcher.fetch, source.url, self._max_bytes)
            if fetched.content_type and fetched.content_type.startswith("text/"):
                return self._encode_text(self._decode_text(fetched, source.url), auxiliary_text)
            mime_type = self.resolve_mime_type(fetched.content_type, urlparse(source.url).path)
            return self._encode_audio(fetched.content, mime_type, auxiliary_text)
        if isinstance(source, UploadedFile):
            content = source.content
            if content is None:
                content = await asyncio.to_thread(self._read_file, source.path or "")
            mime_type = self.resolve_mime_type(source.mime_type, source.file_name or source.path)
            return self._encode_audio(content, mime_type, auxiliary_text)
        if isinstance(source, MicrophoneStream):
            mime_type = self.resolve_mime_type(source.mime_type, None)
            return self._encode_audio(source.content, mime_type, auxiliary_text)
        raise UnreadableSourceError(f"Unsupported source type: {type(source).__name__}")

    def resolve_mime_type(self, declared: Optional[str], name: Optional[str]) -> str:
        """Prefer a declared media type, then one guessed from ``name``, then the default."""

        for candidate in (declared, mimetypes.guess_type(name)[0] if name else None):
            if candidate and candidate.split("/")[0] in ("audio", "video"):
                return candidate
        return self._default_mime_type

    def _read_file(self, path: str) -> bytes:
        file_path = Path(path)
        try:
            size = file_path.stat().st_size
            if size > self._max_bytes:
                raise PayloadTooLargeError(size, self._max_bytes)
            return file_path.read_bytes()
        except OSError as exc:
            raise UnreadableSourceError(f"Cannot read {path}: {exc}") from exc

    @staticmethod
    def _decode_text(fetched: FetchedMedia, url: str) -> str:
        charset = fetched.charset or "utf-8"
        try:
            return fetched.content.decode(charset)
        except (LookupError, UnicodeDecodeError) as exc:
            raise UnreadableSourceError(f"Text at {url} is not valid {charset}: {exc}") from exc

    def _check_size(self, size: int) -> None:
        if size > self._max_bytes:
            raise PayloadTooLargeError(size, self._max_bytes)

    def _encode_audio(self, content: bytes, mime_type: str, auxiliary_text: Optional[str]) -> EncodedPayload:
        if not content:
            raise UnreadableSourceError("Audio source is empty")
        self._check_size(len(content))
        logger.debug("Encoding %d bytes of %s", len(content), mime_type)
        return EncodedPayload(
            kind="audio",
            data=base64.b64encode(content).decode("ascii"),
            mime_type=mime_type,
            auxiliary_text=auxiliary_text or None,
            byte_size=len(content),
            sha256=hashlib.sha256(content).hexdigest(),
        )

    def _encode_text(self, text: str, auxiliary_text: Optional[str]) -> EncodedPayload:
        if not text or not text.strip():
            raise UnreadableSourceError("Text sample is empty")
        raw = text.encode("utf-8")
        self._check_size(len(raw))
        return EncodedPayload(
            kind="text",
            data=text,
            auxiliary_text=auxiliary_text or None,
            byte_size=len(raw),
            sha256=hashlib.sha256(raw).hexdigest(),
        )
