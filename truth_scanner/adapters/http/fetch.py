"""HTTP adapter for sources given as remote URLs."""
from __future__ import annotations

import logging
from typing import Optional

import requests

from truth_scanner.config import FETCH_TIMEOUT_SECONDS
from truth_scanner.domain.exceptions import PayloadTooLargeError, RemoteFetchFailedError
from truth_scanner.ports.fetch import FetchedMedia, RemoteFetchPort

logger = logging.getLogger(__name__)


class _HTTPClient:
    """Small wrapper to make requests session injectable."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._session = session or requests.Session()

    def get(self, *args, **kwargs) -> requests.Response:
        return self._session.get(*args, **kwargs)


class RequestsFetchAdapter(RemoteFetchPort):
    """Streams a URL body with a hard byte ceiling."""

    def __init__(
        self,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        http_client: Optional[requests.Session] = None,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self._timeout = timeout
        self._http = _HTTPClient(http_client)
        self._chunk_size = chunk_size

    def fetch(self, url: str, max_bytes: int) -> FetchedMedia:
        headers = {"Accept": "audio/*,text/plain;q=0.5,*/*;q=0.1"}
        try:
            response = self._http.get(url, headers=headers, timeout=self._timeout, stream=True)
        except requests.RequestException as exc:
            raise RemoteFetchFailedError(f"Failed to fetch {url}: {exc}") from exc

        try:
            response.raise_for_status()
            declared = str(response.headers.get("Content-Length") or "")
            if declared.isdigit() and int(declared) > max_bytes:
                raise PayloadTooLargeError(int(declared), max_bytes)
            body = bytearray()
            for chunk in response.iter_content(chunk_size=self._chunk_size):
                body.extend(chunk)
                if len(body) > max_bytes:
                    raise PayloadTooLargeError(len(body), max_bytes)
        except requests.RequestException as exc:
            raise RemoteFetchFailedError(f"Failed to download {url}: {exc}") from exc
        finally:
            response.close()

        content_type, charset = _parse_content_type(str(response.headers.get("Content-Type") or ""))
        logger.debug("Fetched %d bytes (%s) from %s", len(body), content_type or "unknown", url)
        return FetchedMedia(content=bytes(body), content_type=content_type, charset=charset)


def _parse_content_type(header: str) -> tuple[Optional[str], Optional[str]]:
    media_type, _, params = header.partition(";")
    charset = None
    for param in params.split(";"):
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            charset = value.strip().strip("\"'").lower()
    return media_type.strip().lower() or None, charset
