"""Data models for playlists, staged segments, and capture runs."""

from .segment_models import CaptureResult, CaptureWindow, PlaylistSnapshot, Segment, StagedSegment

__all__ = [
    "Segment",
    "PlaylistSnapshot",
    "CaptureWindow",
    "StagedSegment",
    "CaptureResult",
]
