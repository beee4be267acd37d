"""Derives an MP3 audio track from a captured transport stream via ffmpeg."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..utils.file_utils import ensure_parent_directory
from .tools import find_tool, run_tool


class AudioExtractor:
    """Runs ffmpeg against a finished capture."""

    def __init__(self, ffmpeg_path: Optional[str] = None) -> None:
        self.ffmpeg_path = ffmpeg_path or find_tool("ffmpeg")

    def build_command(self, video_path: str, output_path: str) -> List[str]:
        return [
            self.ffmpeg_path,
            "-loglevel",
            "error",
            "-i",
            video_path,
            "-vn",
            "-acodec",
            "libmp3lame",
            "-ab",
            "192k",
            "-ar",
            "44100",
            "-y",
            output_path,
        ]

    def extract(self, video_path: str, output_path: str) -> str:
        ensure_parent_directory(output_path)
        run_tool(self.build_command(video_path, output_path))
        logging.info("Successfully extracted audio to %s", output_path)
        return output_path
