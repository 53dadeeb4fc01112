from __future__ import annotations

import asyncio
import json

from truth_scanner.config import PROMPTS
from truth_scanner.domain.exceptions import TransientAnalysisError
from truth_scanner.domain.models import EncodedPayload, LiveUpdate, SupportedLanguage, Verdict
from truth_scanner.ports.ai import AnalysisEnginePort
from truth_scanner.ports.fetch import FetchedMedia, RemoteFetchPort
from truth_scanner.services.client import RemoteAnalysisClient
from truth_scanner.services.encoder import TransportEncoder
from truth_scanner.services.prompt import PromptService


class NoFetch(RemoteFetchPort):
    def fetch(self, url: str, max_bytes: int) -> FetchedMedia:
        raise AssertionError("live chunks never fetch URLs")


class ChunkEngine(AnalysisEnginePort):
    """Answers per chunk content; ``b"bad"`` chunks fail."""

    provider_name = "fake"

    def __init__(self) -> None:
        self.seen: list[str] = []

    def generate(self, payload: EncodedPayload, prompt: str, system_instruction: str) -> str:
        self.seen.append(payload.data)
        if payload.data == "YmFk":  # b"bad"
            raise TransientAnalysisError("overloaded")
        return json.dumps({"verdict": "BLOCK_NOW", "confidence": 0.91, "current_intent": "asks for OTP"})


def make_client(engine: AnalysisEnginePort) -> RemoteAnalysisClient:
    return RemoteAnalysisClient(engine, PromptService(PROMPTS))


def test_chunks_are_analysed_and_delivered_in_order() -> None:
    received: list[LiveUpdate] = []
    engine = ChunkEngine()

    async def scenario() -> None:
        client = make_client(engine)
        session = client.open_live_session(
            SupportedLanguage.AUTO, received.append, encoder=TransportEncoder(NoFetch()), mime_type="audio/webm",
        )
        session.process_chunk(b"one")
        session.process_chunk(b"two")
        await session.drain()
        assert session.chunks_sent == 2
        assert session.last_update is received[-1]
        session.close()

    asyncio.run(scenario())

    assert sorted(update.sequence for update in received) == [1, 2]
    assert all(update.verdict is Verdict.BLOCK_NOW for update in received)
    assert received[0].current_intent == "asks for OTP"


def test_failed_chunk_is_reported_and_session_continues() -> None:
    received: list[LiveUpdate] = []

    async def scenario() -> int:
        session = make_client(ChunkEngine()).open_live_session(
            SupportedLanguage.AUTO, received.append, encoder=TransportEncoder(NoFetch()), mime_type="audio/webm",
        )
        session.process_chunk(b"bad")
        await session.drain()
        session.process_chunk(b"good")
        await session.drain()
        failures = session.failures
        session.close()
        return failures

    failures = asyncio.run(scenario())

    assert failures == 1
    assert received[0].failed is True
    assert "overloaded" in (received[0].error or "")
    assert received[1].failed is False
    assert received[1].sequence == 2


def test_listener_errors_do_not_stop_delivery() -> None:
    received: list[int] = []

    def listener(update: LiveUpdate) -> None:
        received.append(update.sequence)
        if update.sequence == 1:
            raise RuntimeError("ui went away")

    async def scenario() -> None:
        session = make_client(ChunkEngine()).open_live_session(
            SupportedLanguage.AUTO, listener, encoder=TransportEncoder(NoFetch()), mime_type="audio/webm",
        )
        session.process_chunk(b"one")
        await session.drain()
        session.process_chunk(b"two")
        await session.drain()
        session.close()

    asyncio.run(scenario())

    assert received == [1, 2]


def test_closed_session_drops_new_chunks() -> None:
    engine = ChunkEngine()
    received: list[LiveUpdate] = []

    async def scenario() -> None:
        session = make_client(engine).open_live_session(
            SupportedLanguage.AUTO, received.append, encoder=TransportEncoder(NoFetch()), mime_type="audio/webm",
        )
        session.close()
        session.process_chunk(b"late")
        await asyncio.sleep(0)
        assert session.closed is True
        assert session.chunks_sent == 0

    asyncio.run(scenario())

    assert engine.seen == []
    assert received == []
