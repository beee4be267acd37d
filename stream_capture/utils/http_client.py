"""HTTP helpers for fetching live playlists and streaming segment bytes."""

from __future__ import annotations

import asyncio
import logging
from typing import BinaryIO, Dict, Optional

import aiohttp

DEFAULT_TIMEOUT = 30
CHUNK_SIZE = 1 << 14

USER_AGENT = "stream-capture/0.1"

DEFAULT_HEADERS: Dict[str, str] = {
    "user-agent": USER_AGENT,
    "accept": "*/*",
}


class TransportError(Exception):
    """Raised when a playlist or segment cannot be fetched."""

    def __init__(self, message: str, url: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


def _is_success(status: int) -> bool:
    return 200 <= status < 300


class HttpClient:
    """Fetches playlist text and segment payloads with a bounded timeout.

    Both requests go through one ``aiohttp`` session whose ``total`` timeout
    covers the whole exchange, body included, so a slow origin cannot stretch
    a fetch past ``timeout`` seconds. Because nothing blocks a thread, a
    capture can abandon either request as soon as it is cancelled.
    """

    def __init__(self, timeout: int = DEFAULT_TIMEOUT, headers: Optional[Dict[str, str]] = None) -> None:
        self.timeout = timeout
        self.headers = DEFAULT_HEADERS.copy()
        if headers:
            self.headers.update(headers)

        self._async_session: Optional[aiohttp.ClientSession] = None
        self._async_lock: Optional[asyncio.Lock] = None
        self._async_loop: Optional[asyncio.AbstractEventLoop] = None

    async def fetch_playlist(self, url: str) -> str:
        """Fetch a playlist document as text."""

        session = await self._get_async_session()
        try:
            async with session.get(url) as resp:
                if not _is_success(resp.status):
                    raise TransportError(f"unexpected status code: {resp.status}", url, status=resp.status)
                body = await resp.read()
        except aiohttp.ClientError as exc:
            logging.error("Playlist request to %s failed: %s", url, exc)
            raise TransportError(f"failed to fetch playlist: {exc}", url) from exc
        except asyncio.TimeoutError as exc:
            logging.error("Playlist request to %s timed out after %ss", url, self.timeout)
            raise TransportError("playlist request timed out", url) from exc
        return body.decode("utf-8", errors="replace")

    async def fetch_segment(self, url: str, writer: BinaryIO) -> int:
        """Stream a segment body into ``writer`` chunk by chunk.

        Returns the number of bytes written.
        """

        session = await self._get_async_session()
        written = 0
        try:
            async with session.get(url) as resp:
                if not _is_success(resp.status):
                    raise TransportError(f"unexpected status code: {resp.status}", url, status=resp.status)
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    if chunk:
                        writer.write(chunk)
                        written += len(chunk)
        except aiohttp.ClientError as exc:
            logging.error("Segment download from %s failed: %s", url, exc)
            raise TransportError(f"failed to fetch segment: {exc}", url) from exc
        except asyncio.TimeoutError as exc:
            logging.error("Segment download from %s timed out after %ss", url, self.timeout)
            raise TransportError("segment request timed out", url) from exc
        return written

    async def _get_async_session(self) -> aiohttp.ClientSession:
        current_loop = asyncio.get_running_loop()
        if self._async_session:
            if (
                self._async_session.closed
                or not self._async_loop
                or self._async_loop.is_closed()
                or self._async_loop is not current_loop
            ):
                # A session cannot be closed from a loop other than its own.
                self._async_session = None
                self._async_loop = None
                self._async_lock = None

        if self._async_lock is None:
            self._async_lock = asyncio.Lock()

        async with self._async_lock:
            if self._async_session and not self._async_session.closed:
                return self._async_session
            self._async_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self.headers.copy(),
            )
            self._async_loop = current_loop
        return self._async_session

    async def close_async(self) -> None:
        """Close the session; must run on the loop that opened it."""

        session = self._async_session
        self._async_session = None
        self._async_loop = None
        self._async_lock = None
        if session and not session.closed:
            await session.close()

    def close(self) -> None:
        if self._async_session and not self._async_session.closed:
            logging.warning("HTTP session was not closed on its event loop; call close_async() first")
        self._async_session = None
        self._async_loop = None
        self._async_lock = None

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
