"""Shared helpers for locating and running external media tools."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from typing import List


class ToolNotFoundError(Exception):
    """Raised when a required executable is not on PATH."""


class ExtractionError(Exception):
    """Raised when an external tool exits unsuccessfully."""


INSTALL_HINTS = {
    "ffmpeg": {
        "darwin": "To install FFmpeg on macOS, run: brew install ffmpeg",
        "linux": (
            "To install FFmpeg on Linux:\n"
            "  Ubuntu/Debian: sudo apt-get update && sudo apt-get install -y ffmpeg\n"
            "  Fedora: sudo dnf install -y ffmpeg\n"
            "  Arch: sudo pacman -S ffmpeg"
        ),
        "win32": "To install FFmpeg on Windows, run: winget install ffmpeg (or download from https://ffmpeg.org)",
    },
    "whisper": {
        "default": "To install Whisper, run: pip install openai-whisper (FFmpeg is also required)",
    },
}


def install_hint(tool: str, platform: str | None = None) -> str:
    hints = INSTALL_HINTS.get(tool, {})
    platform = platform or sys.platform
    for key, hint in hints.items():
        if platform.startswith(key):
            return hint
    return hints.get("default", f"Install {tool} and make sure it is on PATH")


def find_tool(tool: str) -> str:
    path = shutil.which(tool)
    if not path:
        raise ToolNotFoundError(f"{tool} not found in PATH\n{install_hint(tool)}")
    return path


def run_tool(cmd: List[str]) -> None:
    logging.info("Running %s", " ".join(cmd))
    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as exc:
        logging.error("%s failed: %s", cmd[0], exc)
        raise ExtractionError(f"{cmd[0]} exited with status {exc.returncode}") from exc
    except OSError as exc:
        logging.error("Unable to start %s: %s", cmd[0], exc)
        raise ExtractionError(f"unable to start {cmd[0]}: {exc}") from exc
