from __future__ import annotations

import asyncio
import os
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Optional, Sequence, Union

import pytest

from stream_capture.utils.http_client import TransportError

BASE_URL = "https://cdn.example.com/live/index.m3u8"


def build_playlist(first: int, last: int, duration: float = 6.0, name: str = "seg{n}.ts") -> str:
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        "#EXT-X-TARGETDURATION:6",
        f"#EXT-X-MEDIA-SEQUENCE:{first}",
    ]
    for number in range(first, last + 1):
        lines.append(f"#EXTINF:{duration},")
        lines.append(name.format(n=number))
    return "\n".join(lines) + "\n"


def segment_url(number: int) -> str:
    return f"https://cdn.example.com/live/seg{number}.ts"


def payload_for(number: int) -> bytes:
    return f"<ts {number}>".encode() * 3


PlaylistItem = Union[str, Exception]


class FakeHttpClient:
    """In-memory stand-in for HttpClient.

    Playlist responses are served in order and the last one repeats.
    """

    def __init__(self, playlists: Sequence[PlaylistItem] = (), failing: Sequence[str] = ()) -> None:
        self.playlists: List[PlaylistItem] = list(playlists)
        self.payloads: Dict[str, bytes] = {}
        self.failing = set(failing)
        self.playlist_calls = 0
        self.segment_calls: List[str] = []
        self.on_playlist = None
        self.closed = False

    async def fetch_playlist(self, url: str) -> str:
        await asyncio.sleep(0)
        index = min(self.playlist_calls, len(self.playlists) - 1)
        self.playlist_calls += 1
        item = self.playlists[index]
        if self.on_playlist:
            self.on_playlist(self.playlist_calls)
        if isinstance(item, Exception):
            raise item
        return item

    async def fetch_segment(self, url: str, writer) -> int:
        self.segment_calls.append(url)
        await asyncio.sleep(0)
        if url in self.failing:
            raise TransportError("unexpected status code: 500", url, status=500)
        payload = self.payloads.get(url, url.encode())
        writer.write(payload)
        return len(payload)

    async def close_async(self) -> None:
        self.closed = True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeHttpClient:
    client = FakeHttpClient()
    for number in range(0, 200):
        client.payloads[segment_url(number)] = payload_for(number)
    return client


class LiveOriginHandler(BaseHTTPRequestHandler):
    """Serves a playlist that publishes one more segment on every request."""

    server: "LiveOriginServer"

    def log_message(self, format, *args) -> None:
        pass

    def _send(self, status: int, body: bytes, content_type: str = "application/octet-stream") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _drip(self, body: bytes) -> None:
        """Send most of ``body`` at once, then the tail one byte at a time."""

        head, tail = body[: -self.server.drip_bytes], body[-self.server.drip_bytes :]
        self.send_response(200)
        self.send_header("Content-Type", "application/vnd.apple.mpegurl")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        try:
            self.wfile.write(head)
            for index in range(len(tail)):
                time.sleep(self.server.drip_delay)
                self.wfile.write(tail[index : index + 1])
        except OSError:
            # Client gave up.
            pass

    def do_GET(self) -> None:
        origin = self.server
        if self.path == "/live/index.m3u8":
            with origin.lock:
                advance = origin.playlist_requests
                origin.playlist_requests += 1
            first = origin.first_sequence + advance
            body = build_playlist(first, first + origin.window - 1)
            self._send(200, body.encode(), "application/vnd.apple.mpegurl")
        elif self.path.startswith("/live/seg") and self.path.endswith(".ts"):
            number = int(self.path[len("/live/seg"):-len(".ts")])
            with origin.lock:
                origin.segment_requests.append(number)
            self._send(200, payload_for(number))
        elif self.path == "/big.ts":
            self._send(200, origin.big_payload)
        elif self.path == "/empty.m3u8":
            self._send(200, b"#EXTM3U\n#EXT-X-MEDIA-SEQUENCE:4\n", "application/vnd.apple.mpegurl")
        elif self.path == "/slow.m3u8":
            self._drip(build_playlist(100, 102).encode())
        elif self.path == "/broken.m3u8":
            self._send(500, b"origin exploded", "text/plain")
        else:
            self._send(404, b"not found", "text/plain")


class LiveOriginServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), LiveOriginHandler)
        self.lock = threading.Lock()
        self.first_sequence = 100
        self.window = 3
        self.playlist_requests = 0
        self.segment_requests: List[int] = []
        self.big_payload = bytes(range(256)) * 1024
        self.drip_bytes = 10
        self.drip_delay = 0.5

    @property
    def base_url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"


@pytest.fixture
def live_origin():
    server = LiveOriginServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def staged_files(path: str) -> Optional[List[str]]:
    if not os.path.isdir(path):
        return None
    return sorted(os.listdir(path))
