"""Utility helpers for HTTP, locking, and filesystem operations."""

from .file_utils import build_staging_dir, cleanup_directory, ensure_directory, replace_extension
from .http_client import HttpClient, TransportError
from .rwlock import ReadWriteLock

__all__ = [
    "HttpClient",
    "TransportError",
    "ReadWriteLock",
    "build_staging_dir",
    "cleanup_directory",
    "ensure_directory",
    "replace_extension",
]
