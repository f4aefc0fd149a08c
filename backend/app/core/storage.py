"""Utilities for storing uploaded chat files."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final
from uuid import uuid4

from fastapi import HTTPException, UploadFile, status

from app.config import get_settings

settings = get_settings()

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB


@dataclass(slots=True)
class StoredFile:
    """Represents a file persisted by the storage backend."""

    file_name: str
    content_type: str | None
    file_size: int
    absolute_path: Path
    relative_path: str

    @property
    def url(self) -> str:
        return build_file_url(self.relative_path)


def _media_root() -> Path:
    root = settings.media_root
    root.mkdir(parents=True, exist_ok=True)
    return root


async def store_upload(
    user_id: int,
    upload: UploadFile,
    *,
    max_size: int,
    images_only: bool = False,
) -> StoredFile:
    """Persist an uploaded file under the uploader's directory and return its metadata."""

    if images_only and not (upload.content_type or "").startswith("image/"):
        await upload.close()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only image files are allowed",
        )

    target_dir = _media_root() / f"user_{user_id}"
    target_dir.mkdir(parents=True, exist_ok=True)

    original_name = Path(upload.filename or "upload.bin").name
    absolute_path = target_dir / f"{uuid4().hex}{Path(original_name).suffix}"

    total_size = 0
    try:
        with absolute_path.open("wb") as buffer:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > max_size:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=f"File exceeds the {max_size // (1024 * 1024)} MB limit",
                    )
                buffer.write(chunk)
    except HTTPException:
        if absolute_path.exists():
            absolute_path.unlink()
        raise
    finally:
        await upload.close()

    relative_path = os.path.relpath(absolute_path, _media_root())
    return StoredFile(
        file_name=original_name,
        content_type=upload.content_type,
        file_size=total_size,
        absolute_path=absolute_path,
        relative_path=Path(relative_path).as_posix(),
    )


def resolve_path(relative_path: str) -> Path:
    """Return an absolute path for a stored file relative path."""

    root = _media_root().resolve()
    candidate = (root / relative_path).resolve()
    if not candidate.is_relative_to(root):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file path")
    if not candidate.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return candidate


def build_file_url(relative_path: str) -> str:
    base = settings.media_base_url.rstrip("/")
    return f"{base}/{relative_path}"
