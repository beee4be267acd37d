"""Staging area that keeps downloaded segments on disk until they are merged."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from typing import BinaryIO, Dict, Iterable, List, Optional

from ..models import Segment, StagedSegment
from ..utils.file_utils import build_staging_dir, cleanup_directory, ensure_directory, remove_file
from ..utils.http_client import HttpClient
from ..utils.rwlock import ReadWriteLock

COPY_BUFFER_SIZE = 1 << 16


class MissingSegment(Exception):
    """Raised when assembly asks for a sequence that was never staged."""

    def __init__(self, sequence: int) -> None:
        super().__init__(f"segment {sequence} not found")
        self.sequence = sequence


class SegmentStore:
    """Downloads each sequence number at most once and merges them in order."""

    def __init__(self, http_client: HttpClient, staging_dir: Optional[str] = None) -> None:
        self._http_client = http_client
        if staging_dir:
            self.staging_dir = ensure_directory(staging_dir)
        else:
            self.staging_dir = build_staging_dir()
        self._segments: Dict[int, StagedSegment] = {}
        self._lock = ReadWriteLock()
        self._disposed = False

    def get_segment_path(self, sequence: int) -> Optional[str]:
        with self._lock.read_locked():
            staged = self._segments.get(sequence)
        return staged.path if staged else None

    def staged_sequences(self) -> List[int]:
        with self._lock.read_locked():
            return sorted(self._segments)

    def _lookup_valid(self, sequence: int) -> Optional[StagedSegment]:
        with self._lock.read_locked():
            staged = self._segments.get(sequence)
        if staged is None:
            return None
        if os.path.exists(staged.path):
            return staged

        logging.debug("Staged segment %s vanished from %s; downloading again", sequence, staged.path)
        with self._lock.write_locked():
            if self._segments.get(sequence) is staged:
                del self._segments[sequence]
        return None

    async def retrieve(self, segment: Segment) -> str:
        """Stage ``segment`` and return the path holding its bytes.

        Calling this again for a sequence whose file is still on disk returns
        the existing path without touching the network. A failed or abandoned
        transfer never leaves a file behind.
        """

        if self._disposed:
            raise RuntimeError("segment store has been disposed")

        existing = self._lookup_valid(segment.sequence)
        if existing:
            logging.debug("Skipping existing segment %s", segment.sequence)
            return existing.path

        fd, path = tempfile.mkstemp(prefix=f"segment_{segment.sequence}_", suffix=".ts", dir=self.staging_dir)
        completed = False
        try:
            with os.fdopen(fd, "wb") as file_obj:
                await self._http_client.fetch_segment(segment.url, file_obj)
            completed = True
        finally:
            if not completed:
                remove_file(path)

        staged = StagedSegment(sequence=segment.sequence, path=path, complete=True)
        with self._lock.write_locked():
            current = self._segments.get(segment.sequence)
            if current is None or not os.path.exists(current.path):
                self._segments[segment.sequence] = staged
                current = staged
        if current is not staged:
            # Another caller published the same sequence while we were downloading.
            remove_file(path)
        logging.debug("Staged segment %s at %s", segment.sequence, current.path)
        return current.path

    def assemble(self, output: BinaryIO, sequences: Iterable[int]) -> int:
        """Append each staged segment to ``output`` in the given order.

        Returns the number of bytes written.
        """

        written = 0
        for sequence in sequences:
            with self._lock.read_locked():
                staged = self._segments.get(sequence)
            if staged is None or not staged.complete:
                raise MissingSegment(sequence)
            with open(staged.path, "rb") as segment_file:
                shutil.copyfileobj(segment_file, output, COPY_BUFFER_SIZE)
                written += segment_file.tell()
        return written

    def assemble_to_path(self, output_path: str, sequences: Iterable[int]) -> int:
        with open(output_path, "wb") as merged:
            return self.assemble(merged, sequences)

    def dispose(self) -> None:
        """Remove every staged file and the staging directory. Safe to repeat."""

        with self._lock.write_locked():
            staged = list(self._segments.values())
            self._segments.clear()
            self._disposed = True
        for entry in staged:
            remove_file(entry.path)
        cleanup_directory(self.staging_dir)
        logging.debug("Removed staging directory %s", self.staging_dir)

    def __enter__(self) -> "SegmentStore":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.dispose()
