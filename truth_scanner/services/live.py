"""Live-call sessions: independent per-chunk analysis with queued updates."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional, Set

from truth_scanner.domain.exceptions import TruthScannerError
from truth_scanner.domain.models import LiveUpdate, MicrophoneStream, SupportedLanguage

if TYPE_CHECKING:
    from truth_scanner.services.client import RemoteAnalysisClient
    from truth_scanner.services.encoder import TransportEncoder

logger = logging.getLogger(__name__)


class LiveSession:
    """Analyses chunks independently and delivers results through one queue.

    Chunk tasks finish in any order and each pushes a :class:`LiveUpdate`
    onto the queue; a single consumer hands them to ``on_update`` in arrival
    order, so a late chunk may overwrite a newer one. A failed chunk yields an
    update with ``error`` set and the session keeps running.
    """

    def __init__(
        self,
        client: "RemoteAnalysisClient",
        encoder: "TransportEncoder",
        target_language: SupportedLanguage,
        on_update: Callable[[LiveUpdate], None],
        mime_type: Optional[str] = None,
    ) -> None:
        self._client = client
        self._encoder = encoder
        self._target_language = target_language
        self._on_update = on_update
        self._mime_type = mime_type
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[LiveUpdate] = asyncio.Queue()
        self._pending: Set[asyncio.Task] = set()
        self._sequence = 0
        self._closed = False
        self.failures = 0
        self.last_update: Optional[LiveUpdate] = None
        self._consumer = self._loop.create_task(self._consume())
        logger.info("Live session opened (target=%s)", target_language.value)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def chunks_sent(self) -> int:
        return self._sequence

    def process_chunk(self, chunk: bytes) -> None:
        """Schedule analysis of ``chunk`` and return immediately."""

        if self._closed:
            logger.debug("Chunk dropped: live session closed")
            return
        self._sequence += 1
        task = self._loop.create_task(self._analyse(self._sequence, chunk))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _analyse(self, sequence: int, chunk: bytes) -> None:
        try:
            payload = await self._encoder.encode(MicrophoneStream(content=chunk, mime_type=self._mime_type))
            raw = await self._client.fetch_raw(payload, self._target_language, prompt_key="live", live=True)
            update = self._client.normalizer.normalize_live(raw, self._target_language, sequence)
        except TruthScannerError as exc:
            self.failures += 1
            logger.warning("Live chunk %d failed: %s", sequence, exc)
            update = LiveUpdate(sequence=sequence, error=str(exc))
        self._queue.put_nowait(update)

    async def _consume(self) -> None:
        while True:
            update = await self._queue.get()
            self.last_update = update
            try:
                self._on_update(update)
            except Exception:
                logger.exception("Live update listener failed for chunk %d", update.sequence)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every scheduled chunk has been delivered."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self._queue.join()

    def close(self) -> None:
        """Detach from all pending chunks; no further updates are delivered."""

        if self._closed:
            return
        self._closed = True
        for task in list(self._pending):
            task.cancel()
        self._consumer.cancel()
        logger.info("Live session closed after %d chunk(s), %d failed", self._sequence, self.failures)
