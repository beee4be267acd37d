"""Transcribes an audio track into SRT subtitles with OpenAI Whisper."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

from ..utils.file_utils import ensure_directory
from .tools import ExtractionError, find_tool, run_tool

DEFAULT_MODEL = "base"


class SubtitleExtractor:
    """Runs the whisper CLI and moves its output to the requested path."""

    def __init__(self, whisper_path: Optional[str] = None) -> None:
        self.whisper_path = whisper_path or find_tool("whisper")

    def build_command(
        self,
        audio_path: str,
        output_dir: str,
        language: Optional[str] = None,
        model: str = DEFAULT_MODEL,
    ) -> List[str]:
        cmd = [
            self.whisper_path,
            audio_path,
            "--model",
            model or DEFAULT_MODEL,
            "--output_dir",
            output_dir,
            "--output_format",
            "srt",
        ]
        if language:
            cmd.extend(["--language", language])
        return cmd

    def extract(
        self,
        audio_path: str,
        output_path: str,
        language: Optional[str] = None,
        model: str = DEFAULT_MODEL,
    ) -> str:
        output_dir = os.path.dirname(os.path.abspath(output_path))
        ensure_directory(output_dir)
        run_tool(self.build_command(audio_path, output_dir, language=language, model=model))

        # whisper names its output after the input file.
        produced = os.path.join(output_dir, f"{Path(audio_path).stem}.srt")
        if os.path.abspath(produced) != os.path.abspath(output_path):
            try:
                os.replace(produced, output_path)
            except OSError as exc:
                raise ExtractionError(f"failed to move subtitle file to {output_path}: {exc}") from exc
        logging.info("Successfully extracted subtitles to %s", output_path)
        return output_path
