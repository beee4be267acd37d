"""Tools for parsing live m3u8 playlists into numbered segments."""

from __future__ import annotations

import posixpath
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from ..models import PlaylistSnapshot, Segment
from ..utils.http_client import HttpClient

MEDIA_SEQUENCE_RE = re.compile(r"#EXT-X-MEDIA-SEQUENCE:(\d+)")
DURATION_RE = re.compile(r"#EXTINF:([\d.]+)")
# Origins such as master_1440_primary_719721.ts carry the real sequence number.
FILENAME_SEQUENCE_RE = re.compile(r"_(\d+)\.ts$")

ALLOWED_SCHEMES = {"http", "https"}


class MalformedPlaylist(Exception):
    """Raised when a playlist references something that is not a usable URL."""


def _is_absolute_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ALLOWED_SCHEMES and bool(parsed.netloc)


def _resolve(base_url: str, reference: str) -> str:
    try:
        resolved = urljoin(base_url, reference)
    except ValueError as exc:
        raise MalformedPlaylist(f"invalid segment URL {reference}: {exc}") from exc
    if not _is_absolute_http_url(resolved):
        raise MalformedPlaylist(f"invalid segment URL {reference}: resolved to {resolved!r}")
    return resolved


def _sequence_from_filename(url: str) -> Optional[int]:
    filename = posixpath.basename(urlparse(url).path)
    match = FILENAME_SEQUENCE_RE.search(filename)
    if match:
        return int(match.group(1))
    return None


def parse_playlist(text: str, base_url: str) -> List[Segment]:
    """Parses playlist ``text`` into segments in document order.

    Sequence numbers come from a running counter seeded by
    ``#EXT-X-MEDIA-SEQUENCE`` unless the segment filename ends in
    ``_<digits>.ts``, in which case the embedded number wins. The counter
    still advances for such segments. Unknown directives are ignored.
    """

    if not _is_absolute_http_url(base_url):
        raise MalformedPlaylist(f"invalid base URL: {base_url!r}")

    segments: List[Segment] = []
    media_sequence = 0
    pending_duration = 0.0

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = MEDIA_SEQUENCE_RE.match(line)
        if match:
            media_sequence = int(match.group(1))
            continue

        match = DURATION_RE.match(line)
        if match:
            try:
                pending_duration = float(match.group(1))
            except ValueError:
                pending_duration = 0.0
            continue

        if line.startswith("#"):
            continue

        url = _resolve(base_url, line)
        sequence = _sequence_from_filename(url)
        segments.append(
            Segment(
                url=url,
                sequence=media_sequence if sequence is None else sequence,
                duration=pending_duration,
            )
        )
        media_sequence += 1
        pending_duration = 0.0

    return segments


class M3U8Parser:
    """Fetches a live playlist and turns it into a snapshot."""

    def __init__(self, http_client: HttpClient) -> None:
        self._http_client = http_client

    async def snapshot(self, m3u8_url: str) -> PlaylistSnapshot:
        text = await self._http_client.fetch_playlist(m3u8_url)
        return PlaylistSnapshot(base_url=m3u8_url, segments=tuple(parse_playlist(text, m3u8_url)))
