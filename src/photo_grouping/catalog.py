"""Collaborator protocols for photo lookup and pixel decoding, plus reference implementations."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

from PIL import Image, ImageOps

from photo_grouping.models import PhotoRecord
from photo_grouping.scanner import scan_session


class PhotoCatalog(Protocol):
    """Looks up the ordered photo records of one capture session."""

    def get_photos_by_session(self, session_id: str) -> Sequence[PhotoRecord]: ...


class PixelDecoder(Protocol):
    """Turns a stored image reference into an addressable pixel buffer."""

    def load(self, pixel_ref: Any) -> Image.Image: ...


class InMemoryPhotoCatalog:
    """Catalog backed by a mapping of session id to photo records."""

    def __init__(self, sessions: dict[str, Iterable[PhotoRecord]] | None = None) -> None:
        self._sessions: dict[str, list[PhotoRecord]] = {
            session_id: list(photos) for session_id, photos in (sessions or {}).items()
        }

    def add_session(self, session_id: str, photos: Iterable[PhotoRecord]) -> None:
        self._sessions[session_id] = list(photos)

    def get_photos_by_session(self, session_id: str) -> list[PhotoRecord]:
        return list(self._sessions.get(session_id, []))


class DirectoryPhotoCatalog:
    """Catalog where a session id is an album directory on disk."""

    def __init__(self, face_index: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._face_index = face_index or {}

    def get_photos_by_session(self, session_id: str) -> list[PhotoRecord]:
        return scan_session(Path(session_id), face_index=self._face_index)


class PillowPixelDecoder:
    """Decoder that opens file paths or file-like objects with Pillow."""

    def load(self, pixel_ref: Any) -> Image.Image:
        if isinstance(pixel_ref, Image.Image):
            return pixel_ref

        source = Path(pixel_ref) if isinstance(pixel_ref, str) else pixel_ref
        with Image.open(source) as opened:
            image = ImageOps.exif_transpose(opened)
            image.load()
            return image.convert("RGB")


__all__ = [
    "PhotoCatalog",
    "PixelDecoder",
    "InMemoryPhotoCatalog",
    "DirectoryPhotoCatalog",
    "PillowPixelDecoder",
]
