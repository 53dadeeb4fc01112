from __future__ import annotations

import asyncio
import base64
import hashlib
from pathlib import Path

import pytest

from truth_scanner.domain.exceptions import (
    PayloadTooLargeError,
    RemoteFetchFailedError,
    UnreadableSourceError,
)
from truth_scanner.domain.models import MicrophoneStream, PlainText, RemoteURL, UploadedFile
from truth_scanner.ports.fetch import FetchedMedia, RemoteFetchPort
from truth_scanner.services.encoder import TransportEncoder


class FakeFetcher(RemoteFetchPort):
    def __init__(self, media: FetchedMedia | None = None, error: Exception | None = None) -> None:
        self._media = media
        self._error = error
        self.calls: list[tuple[str, int]] = []

    def fetch(self, url: str, max_bytes: int) -> FetchedMedia:
        self.calls.append((url, max_bytes))
        if self._error is not None:
            raise self._error
        assert self._media is not None
        return self._media


def make_encoder(fetcher: RemoteFetchPort | None = None, limit: int = 1024) -> TransportEncoder:
    return TransportEncoder(fetcher or FakeFetcher(), max_payload_bytes=limit, default_mime_type="audio/mp3")


def test_text_source_is_passed_through() -> None:
    payload = asyncio.run(make_encoder().encode(PlainText(text="Your KYC expires today"), "sms body"))

    assert payload.kind == "text"
    assert payload.data == "Your KYC expires today"
    assert payload.auxiliary_text == "sms body"
    assert payload.mime_type is None
    assert payload.sha256 == hashlib.sha256(b"Your KYC expires today").hexdigest()


def test_blank_text_is_unreadable() -> None:
    with pytest.raises(UnreadableSourceError):
        asyncio.run(make_encoder().encode(PlainText(text="   ")))


def test_uploaded_bytes_are_base64_encoded_with_declared_type() -> None:
    source = UploadedFile(content=b"RIFFdata", file_name="call.wav", mime_type="audio/wav")

    payload = asyncio.run(make_encoder().encode(source))

    assert payload.kind == "audio"
    assert base64.b64decode(payload.data) == b"RIFFdata"
    assert payload.mime_type == "audio/wav"
    assert payload.byte_size == 8


def test_uploaded_path_is_read_and_type_guessed_from_name(tmp_path: Path) -> None:
    recording = tmp_path / "voice_note.wav"
    recording.write_bytes(b"\x00\x01\x02")

    payload = asyncio.run(make_encoder().encode(UploadedFile(path=str(recording))))

    assert base64.b64decode(payload.data) == b"\x00\x01\x02"
    assert payload.mime_type.startswith("audio/")


def test_non_media_type_falls_back_to_default() -> None:
    source = UploadedFile(content=b"abc", file_name="notes.txt", mime_type="application/octet-stream")

    payload = asyncio.run(make_encoder().encode(source))

    assert payload.mime_type == "audio/mp3"


def test_missing_file_is_unreadable(tmp_path: Path) -> None:
    with pytest.raises(UnreadableSourceError, match="Cannot read"):
        asyncio.run(make_encoder().encode(UploadedFile(path=str(tmp_path / "missing.mp3"))))


def test_oversized_file_is_rejected_before_reading(tmp_path: Path) -> None:
    recording = tmp_path / "long.mp3"
    recording.write_bytes(b"x" * 2048)

    with pytest.raises(PayloadTooLargeError) as exc_info:
        asyncio.run(make_encoder(limit=1024).encode(UploadedFile(path=str(recording))))

    assert exc_info.value.size == 2048
    assert exc_info.value.limit == 1024


def test_limit_applies_to_raw_bytes_not_base64() -> None:
    # 768 raw bytes grow to 1024 base64 characters; still within a 768 byte limit
    payload = asyncio.run(make_encoder(limit=768).encode(MicrophoneStream(content=b"a" * 768, mime_type="audio/webm")))

    assert payload.byte_size == 768
    assert len(payload.data) == 1024


def test_empty_recording_is_unreadable() -> None:
    with pytest.raises(UnreadableSourceError, match="empty"):
        asyncio.run(make_encoder().encode(MicrophoneStream(content=b"", mime_type="audio/webm")))


def test_remote_audio_uses_response_content_type() -> None:
    fetcher = FakeFetcher(FetchedMedia(content=b"ID3", content_type="audio/mpeg"))

    payload = asyncio.run(make_encoder(fetcher).encode(RemoteURL(url="https://cdn.example/clip")))

    assert fetcher.calls == [("https://cdn.example/clip", 1024)]
    assert payload.kind == "audio"
    assert payload.mime_type == "audio/mpeg"


def test_remote_audio_without_type_is_guessed_from_path() -> None:
    fetcher = FakeFetcher(FetchedMedia(content=b"ID3", content_type=None))

    payload = asyncio.run(make_encoder(fetcher).encode(RemoteURL(url="https://cdn.example/a/voice.mp3?x=1")))

    assert payload.mime_type == "audio/mpeg"


def test_remote_text_becomes_text_payload() -> None:
    fetcher = FakeFetcher(FetchedMedia(content="Congratulations, you won".encode("utf-8"), content_type="text/plain"))

    payload = asyncio.run(make_encoder(fetcher).encode(RemoteURL(url="https://paste.example/raw")))

    assert payload.kind == "text"
    assert payload.data == "Congratulations, you won"


def test_remote_text_honours_declared_charset() -> None:
    fetcher = FakeFetcher(
        FetchedMedia(content="Félicitations".encode("latin-1"), content_type="text/plain", charset="latin-1")
    )

    payload = asyncio.run(make_encoder(fetcher).encode(RemoteURL(url="https://paste.example/raw")))

    assert payload.data == "Félicitations"


def test_remote_text_with_invalid_utf8_is_unreadable() -> None:
    fetcher = FakeFetcher(FetchedMedia(content=b"OTP \xff\xfe now", content_type="text/plain"))

    with pytest.raises(UnreadableSourceError, match="not valid utf-8"):
        asyncio.run(make_encoder(fetcher).encode(RemoteURL(url="https://paste.example/raw")))


def test_remote_fetch_failure_propagates() -> None:
    fetcher = FakeFetcher(error=RemoteFetchFailedError("404"))

    with pytest.raises(RemoteFetchFailedError):
        asyncio.run(make_encoder(fetcher).encode(RemoteURL(url="https://cdn.example/gone.mp3")))
