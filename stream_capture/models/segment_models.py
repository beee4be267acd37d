"""Pydantic models that describe playlist segments and capture runs."""

from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Segment(BaseModel):
    """A single media segment referenced by a playlist."""

    model_config = ConfigDict(frozen=True)

    url: str
    sequence: int
    duration: float = Field(default=0.0, ge=0.0)


class PlaylistSnapshot(BaseModel):
    """Segments produced by one fetch+parse cycle of a live playlist."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    segments: Tuple[Segment, ...] = ()

    def __len__(self) -> int:
        return len(self.segments)

    def last_segment(self) -> Optional[Segment]:
        """Returns the segment with the highest sequence number, if any."""

        return max(self.segments, key=lambda segment: segment.sequence, default=None)

    def find(self, sequence: int) -> Optional[Segment]:
        """Returns the first segment carrying ``sequence`` in document order."""

        return next((segment for segment in self.segments if segment.sequence == sequence), None)


class CaptureWindow(BaseModel):
    """The fixed range of sequence numbers requested for one capture run."""

    model_config = ConfigDict(frozen=True)

    start_sequence: int
    target_sequence: int

    @classmethod
    def starting_at(cls, start_sequence: int, segment_count: int) -> "CaptureWindow":
        if segment_count < 1:
            raise ValueError(f"segment_count must be at least 1, got {segment_count}")
        return cls(start_sequence=start_sequence, target_sequence=start_sequence + segment_count - 1)

    @property
    def size(self) -> int:
        return self.target_sequence - self.start_sequence + 1

    def sequences(self) -> range:
        return range(self.start_sequence, self.target_sequence + 1)

    def position(self, sequence: int) -> int:
        """1-based position of ``sequence`` inside the window."""

        return sequence - self.start_sequence + 1


class StagedSegment(BaseModel):
    """A segment whose bytes were written to the staging area."""

    model_config = ConfigDict(frozen=True)

    sequence: int
    path: str
    complete: bool = False


class CaptureResult(BaseModel):
    """Outcome of a capture run that did not fail fatally."""

    requested: int
    window: Optional[CaptureWindow] = None
    downloaded_sequences: List[int] = Field(default_factory=list)
    failed_sequences: List[int] = Field(default_factory=list)
    output_path: Optional[str] = None
    cancelled: bool = False

    @property
    def downloaded_count(self) -> int:
        return len(self.downloaded_sequences)
