"""Core utilities for the Sky Talk backend."""

from .storage import build_file_url, resolve_path, store_upload

__all__ = ["store_upload", "resolve_path", "build_file_url"]
