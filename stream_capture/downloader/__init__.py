"""Playlist tracking, segment staging, and capture orchestration."""

from .capture_controller import AssemblyFailed, CaptureController, CaptureState, NoSegmentsAvailable, capture
from .playlist_parser import M3U8Parser, MalformedPlaylist, parse_playlist
from .segment_store import MissingSegment, SegmentStore

__all__ = [
    "capture",
    "CaptureController",
    "CaptureState",
    "M3U8Parser",
    "SegmentStore",
    "parse_playlist",
    "MalformedPlaylist",
    "MissingSegment",
    "NoSegmentsAvailable",
    "AssemblyFailed",
]
