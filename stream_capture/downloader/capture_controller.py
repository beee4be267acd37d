"""Follows a live playlist and records a fixed window of segments."""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import posixpath
import threading
from typing import Coroutine, List, Optional, TypeVar
from urllib.parse import urlparse

from ..models import CaptureResult, CaptureWindow, PlaylistSnapshot, Segment
from ..utils.file_utils import build_staging_dir, ensure_parent_directory, remove_file
from ..utils.http_client import HttpClient, TransportError
from .playlist_parser import M3U8Parser, MalformedPlaylist
from .segment_store import SegmentStore

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 2.0
PROGRESS_EVERY = 5
CANCEL_CHECK_INTERVAL = 0.1


class NoSegmentsAvailable(Exception):
    """Raised when the first playlist snapshot has nothing to capture."""


class AssemblyFailed(Exception):
    """Raised when the staged segments cannot be written to the output file."""


class CaptureCancelled(Exception):
    """Raised internally once the cancellation signal has been observed."""


class CaptureState(enum.Enum):
    INITIALIZING = "initializing"
    WINDOWING = "windowing"
    PER_SEGMENT = "per_segment"
    POLLING = "polling"
    STAGING = "staging"
    ASSEMBLING = "assembling"
    DONE = "done"
    CANCELLED = "cancelled"


class CaptureController:
    """Drives one capture run from the first snapshot to the merged file.

    The window is fixed from the first snapshot: it starts at the newest
    segment then available and spans ``segment_count`` sequence numbers.
    Each sequence is polled for until the origin publishes it, which may take
    arbitrarily long; only cancellation ends the wait. A segment that fails to
    download is skipped rather than retried. The store is always disposed when
    the run ends.
    """

    def __init__(
        self,
        http_client: HttpClient,
        store: SegmentStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
        progress_every: int = PROGRESS_EVERY,
    ) -> None:
        if poll_interval < 0:
            raise ValueError(f"poll_interval must not be negative, got {poll_interval}")
        self._http_client = http_client
        self._store = store
        self._parser = M3U8Parser(http_client)
        self.poll_interval = poll_interval
        self.cancel_event = cancel_event or threading.Event()
        self.progress_every = max(1, progress_every)
        self.state = CaptureState.INITIALIZING

    def _enter(self, state: CaptureState) -> None:
        if state is not self.state:
            logging.debug("Capture state %s -> %s", self.state.value, state.value)
        self.state = state

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CaptureCancelled()

    async def _watch_cancel(self) -> None:
        while not self.cancel_event.is_set():
            await asyncio.sleep(CANCEL_CHECK_INTERVAL)

    async def _unless_cancelled(self, coro: Coroutine[object, object, T]) -> T:
        """Await ``coro`` but abandon it as soon as cancellation fires."""

        if self.cancel_event.is_set():
            coro.close()
            raise CaptureCancelled()
        work = asyncio.ensure_future(coro)
        watcher = asyncio.ensure_future(self._watch_cancel())
        try:
            await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
        if not work.done():
            work.cancel()
            try:
                await work
            except asyncio.CancelledError:
                pass
            raise CaptureCancelled()
        return work.result()

    async def _sleep(self, seconds: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds
        while True:
            self._check_cancelled()
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, CANCEL_CHECK_INTERVAL))

    async def _snapshot(self, playlist_url: str) -> PlaylistSnapshot:
        return await self._unless_cancelled(self._parser.snapshot(playlist_url))

    async def _wait_for_segment(self, playlist_url: str, sequence: int) -> Segment:
        attempt = 0
        while True:
            self._check_cancelled()
            try:
                snapshot = await self._snapshot(playlist_url)
            except (TransportError, MalformedPlaylist) as exc:
                logging.warning("Error refreshing playlist while waiting for segment %s: %s", sequence, exc)
                await self._sleep(self.poll_interval)
                continue

            segment = snapshot.find(sequence)
            if segment is not None:
                return segment

            if attempt % self.progress_every == 0:
                newest = snapshot.last_segment()
                logging.info(
                    "Waiting for segment %s... (current last: %s)",
                    sequence,
                    newest.sequence if newest else "none",
                )
            attempt += 1
            await self._sleep(self.poll_interval)

    async def _initial_window(self, playlist_url: str, segment_count: int) -> CaptureWindow:
        self._enter(CaptureState.INITIALIZING)
        snapshot = await self._snapshot(playlist_url)
        newest = snapshot.last_segment()
        if newest is None:
            raise NoSegmentsAvailable(f"no segments found in playlist {playlist_url}")

        self._enter(CaptureState.WINDOWING)
        window = CaptureWindow.starting_at(newest.sequence, segment_count)
        logging.info(
            "Starting from segment %s, target: %s (need %s segments)",
            window.start_sequence,
            window.target_sequence,
            window.size,
        )
        return window

    def _assemble(self, output_path: str, sequences: List[int]) -> None:
        self._enter(CaptureState.ASSEMBLING)
        logging.info("Merging %s segments into %s", len(sequences), output_path)
        try:
            ensure_parent_directory(output_path)
            self._store.assemble_to_path(output_path, sequences)
        except OSError as exc:
            _discard_partial(output_path)
            raise AssemblyFailed(f"error merging segments into {output_path}: {exc}") from exc
        except Exception:
            _discard_partial(output_path)
            raise
        logging.info("Successfully merged segments into %s", output_path)

    async def run(self, playlist_url: str, segment_count: int, output_path: str) -> CaptureResult:
        try:
            if segment_count < 1:
                raise ValueError(f"segment_count must be at least 1, got {segment_count}")
            result = CaptureResult(requested=segment_count)
            try:
                window = await self._initial_window(playlist_url, segment_count)
                result.window = window
                for sequence in window.sequences():
                    self._enter(CaptureState.PER_SEGMENT)
                    self._check_cancelled()

                    self._enter(CaptureState.POLLING)
                    segment = await self._wait_for_segment(playlist_url, sequence)

                    self._enter(CaptureState.STAGING)
                    logging.info(
                        "[%s/%s] Downloading segment %s: %s",
                        window.position(sequence),
                        window.size,
                        sequence,
                        posixpath.basename(urlparse(segment.url).path),
                    )
                    try:
                        await self._unless_cancelled(self._store.retrieve(segment))
                    except (TransportError, OSError) as exc:
                        logging.error("Error downloading segment %s: %s", sequence, exc)
                        result.failed_sequences.append(sequence)
                        continue
                    result.downloaded_sequences.append(sequence)
            except CaptureCancelled:
                self._enter(CaptureState.CANCELLED)
                result.cancelled = True
                logging.info("Cancelled by user after %s segments", result.downloaded_count)
                return result

            logging.info("Successfully downloaded %s of %s segments", result.downloaded_count, segment_count)
            if not result.downloaded_sequences:
                logging.warning("No segments were downloaded; skipping merge")
            else:
                self._assemble(output_path, result.downloaded_sequences)
                result.output_path = output_path
            self._enter(CaptureState.DONE)
            return result
        finally:
            self._store.dispose()
            logging.debug("Staging directory %s cleaned up", self._store.staging_dir)


def _discard_partial(output_path: str) -> None:
    if os.path.isfile(output_path):
        remove_file(output_path)


def capture(
    playlist_url: str,
    segment_count: int,
    output_path: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    cancel_event: Optional[threading.Event] = None,
    staging_dir: Optional[str] = None,
    http_client: Optional[HttpClient] = None,
) -> CaptureResult:
    """Record ``segment_count`` live segments from ``playlist_url`` into ``output_path``.

    Blocks until the window is captured, the run is cancelled through
    ``cancel_event``, or a fatal error is raised. ``staging_dir`` is the
    parent directory for the per-run staging area.
    """

    if segment_count < 1:
        raise ValueError(f"segment_count must be at least 1, got {segment_count}")
    if poll_interval < 0:
        raise ValueError(f"poll_interval must not be negative, got {poll_interval}")

    owns_client = http_client is None
    client = http_client or HttpClient()
    try:
        store = SegmentStore(client, staging_dir=build_staging_dir(staging_dir))
        logging.info("Live stream capture started")
        logging.info("Playlist URL: %s", playlist_url)
        logging.info("Target segments: %s", segment_count)
        logging.info("Polling interval: %ss", poll_interval)
        logging.info("Temp directory: %s", store.staging_dir)
        controller = CaptureController(client, store, poll_interval=poll_interval, cancel_event=cancel_event)

        async def _run() -> CaptureResult:
            try:
                return await controller.run(playlist_url, segment_count, output_path)
            finally:
                await client.close_async()

        return asyncio.run(_run())
    finally:
        if owns_client:
            client.close()
