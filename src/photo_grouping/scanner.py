"""Filesystem scanner that turns an album directory into photo records."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from PIL import ExifTags, Image, UnidentifiedImageError

from photo_grouping.models import FaceAnalysis, PhotoRecord
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "scanner"})

DEFAULT_IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".jpg",
        ".jpeg",
        ".png",
        ".webp",
        ".tif",
        ".tiff",
    }
)

_EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


@dataclass(frozen=True)
class FileInfo:
    """Lightweight file metadata for scanning results."""

    path: Path
    size_bytes: int
    mtime: float


def scan_root(root: Path, extensions: frozenset[str] | None = None) -> Iterator[FileInfo]:
    """Yield image files directly inside ``root``, sorted by name.

    A capture session is one flat directory, so the scan does not recurse.
    """

    allowed = extensions or DEFAULT_IMAGE_EXTENSIONS

    if not root.exists() or not root.is_dir():
        LOGGER.warning("scan_root_missing", extra={"root": str(root)})
        return

    for path in sorted(root.iterdir()):
        if not path.is_file():
            continue
        if path.suffix.lower() not in allowed:
            continue

        stat = path.stat()
        yield FileInfo(path=path, size_bytes=stat.st_size, mtime=stat.st_mtime)


def read_capture_time(image: Image.Image) -> datetime | None:
    """Return the EXIF capture time of ``image``, or ``None`` when absent or unparsable."""

    exif = image.getexif()
    if not exif:
        return None

    raw_dt = exif.get_ifd(ExifTags.IFD.Exif).get(ExifTags.Base.DateTimeOriginal) or exif.get(ExifTags.Base.DateTime)
    if not isinstance(raw_dt, str):
        return None

    try:
        return datetime.strptime(raw_dt.strip(), _EXIF_DATETIME_FORMAT)
    except ValueError:
        LOGGER.debug("exif_datetime_unparsable", extra={"value": raw_dt})
        return None


def _faces_for(path: Path, face_index: dict[str, list[dict[str, Any]]]) -> tuple[FaceAnalysis, ...]:
    entries = face_index.get(path.name) or face_index.get(str(path)) or []
    return tuple(FaceAnalysis.from_dict(entry) for entry in entries if isinstance(entry, dict))


def scan_session(
    root: Path,
    *,
    face_index: dict[str, list[dict[str, Any]]] | None = None,
    extensions: frozenset[str] | None = None,
) -> list[PhotoRecord]:
    """Build photo records for every readable image in ``root``.

    Capture time comes from EXIF ``DateTimeOriginal``/``DateTime`` and falls
    back to the file modification time. ``face_index`` maps file names to
    cached face-analysis payloads produced upstream.
    """

    index = face_index or {}
    records: list[PhotoRecord] = []

    for info in scan_root(root, extensions):
        try:
            with Image.open(info.path) as image:
                width, height = image.size
                captured_at = read_capture_time(image)
        except (OSError, UnidentifiedImageError) as exc:
            LOGGER.warning("scan_image_unreadable", extra={"path": str(info.path), "error": str(exc)})
            continue

        records.append(
            PhotoRecord(
                photo_id=info.path.name,
                pixel_ref=str(info.path),
                captured_at=captured_at or datetime.fromtimestamp(info.mtime),
                width=width,
                height=height,
                file_size=info.size_bytes,
                faces=_faces_for(info.path, index),
            )
        )

    LOGGER.info("scan_session_complete", extra={"root": str(root), "photos": len(records)})
    return records


__all__ = ["FileInfo", "DEFAULT_IMAGE_EXTENSIONS", "scan_root", "read_capture_time", "scan_session"]
