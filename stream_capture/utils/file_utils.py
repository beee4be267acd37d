"""Filesystem helpers for staging areas and output paths."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

STAGING_PREFIX = "stream-capture-"


def ensure_directory(path: str) -> str:
    """Creates a directory (and its parents) if needed."""

    Path(path).mkdir(parents=True, exist_ok=True)
    return path


def ensure_parent_directory(file_path: str) -> Optional[str]:
    """Creates the directory holding ``file_path`` unless it is the cwd."""

    parent = os.path.dirname(file_path)
    if not parent or parent == ".":
        return None
    return ensure_directory(parent)


def cleanup_directory(path: str) -> None:
    """Deletes a directory tree if it exists."""

    if os.path.isdir(path):
        shutil.rmtree(path, ignore_errors=True)


def build_staging_dir(parent: Optional[str] = None) -> str:
    """Creates a fresh, uniquely named staging directory for one capture run."""

    if parent:
        ensure_directory(parent)
    return tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=parent)


def replace_extension(path: str, extension: str) -> str:
    """Returns ``path`` with its extension swapped, e.g. ``out/a.ts`` -> ``out/a.mp3``."""

    root, _ = os.path.splitext(path)
    return f"{root}{extension}"


def remove_file(path: str) -> bool:
    """Removes a file, returning False when it was already gone."""

    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    return True
