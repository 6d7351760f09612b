"""Tests for album scanning, the directory catalog and the CLI."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import typer
from PIL import ExifTags, Image
from typer.testing import CliRunner

from conftest import make_scene
from photo_grouping.catalog import DirectoryPhotoCatalog, PillowPixelDecoder
from photo_grouping.cli import main
from photo_grouping.scanner import read_capture_time, scan_root, scan_session


def _save_jpeg(path: Path, taken: str | None, image: Image.Image | None = None) -> None:
    image = image or make_scene()
    if taken is None:
        image.save(path, format="JPEG", quality=95)
        return
    exif = Image.Exif()
    exif[ExifTags.Base.DateTime] = taken
    image.save(path, format="JPEG", quality=95, exif=exif)


def _album(root: Path) -> Path:
    scene = make_scene()
    _save_jpeg(root / "IMG_0001.jpg", "2024:06:01 12:00:00", scene)
    _save_jpeg(root / "IMG_0002.jpg", "2024:06:01 12:00:02", scene)
    _save_jpeg(root / "IMG_0003.jpg", "2024:06:01 12:00:04", scene)
    return root


def test_scan_root_is_flat_and_filters_extensions(tmp_path: Path) -> None:
    """The scan lists image files directly in the root, sorted by name."""

    _save_jpeg(tmp_path / "b.jpg", None)
    _save_jpeg(tmp_path / "a.JPEG", None)
    (tmp_path / "notes.txt").write_text("not an image", encoding="utf-8")
    nested = tmp_path / "nested"
    nested.mkdir()
    _save_jpeg(nested / "c.jpg", None)

    names = [info.path.name for info in scan_root(tmp_path)]

    assert names == ["a.JPEG", "b.jpg"]


def test_scan_root_missing_directory_yields_nothing(tmp_path: Path) -> None:
    """A missing root yields no files."""

    assert list(scan_root(tmp_path / "missing")) == []


def test_read_capture_time_parses_exif(tmp_path: Path) -> None:
    """The EXIF DateTime tag becomes the capture time."""

    path = tmp_path / "photo.jpg"
    _save_jpeg(path, "2024:06:01 12:00:02")

    with Image.open(path) as image:
        assert read_capture_time(image) == datetime(2024, 6, 1, 12, 0, 2)


def test_read_capture_time_without_exif() -> None:
    """Images without EXIF have no capture time."""

    assert read_capture_time(Image.new("RGB", (4, 4))) is None


def test_scan_session_builds_records_with_faces(tmp_path: Path) -> None:
    """Records carry EXIF or mtime capture times, sizes and indexed faces."""

    _album(tmp_path)
    _save_jpeg(tmp_path / "no_exif.jpg", None)
    (tmp_path / "corrupt.jpg").write_bytes(b"not really a jpeg")
    face_index = {"IMG_0002.jpg": [{"bounding_box": {"x": 0.1, "y": 0.1, "width": 0.2, "height": 0.2}}]}

    records = scan_session(tmp_path, face_index=face_index)

    assert [record.photo_id for record in records] == ["IMG_0001.jpg", "IMG_0002.jpg", "IMG_0003.jpg", "no_exif.jpg"]
    first = records[0]
    assert first.captured_at == datetime(2024, 6, 1, 12, 0, 0)
    assert (first.width, first.height) == (96, 64)
    assert first.file_size > 0
    assert len(records[1].faces) == 1
    assert records[1].faces[0].bounding_box.width == 0.2
    # no EXIF: capture time falls back to the file modification time
    assert records[3].captured_at == datetime.fromtimestamp((tmp_path / "no_exif.jpg").stat().st_mtime)


def test_directory_catalog_and_pillow_decoder(tmp_path: Path) -> None:
    """The directory catalog and Pillow decoder load an album end to end."""

    _album(tmp_path)

    records = DirectoryPhotoCatalog().get_photos_by_session(str(tmp_path))
    image = PillowPixelDecoder().load(records[0].pixel_ref)

    assert len(records) == 3
    assert image.mode == "RGB"
    assert image.size == (96, 64)


def test_cli_writes_groups_as_json(tmp_path: Path) -> None:
    """The CLI groups an album and writes the clusters as JSON."""

    album = tmp_path / "album"
    album.mkdir()
    _album(album)
    output = tmp_path / "groups.json"
    app = typer.Typer()
    app.command()(main)

    result = CliRunner().invoke(app, ["--root", str(album), "--output", str(output), "--batch-size", "2"])

    assert result.exit_code == 0, result.output
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert len(payload) == 1
    assert payload[0]["id"] == "cluster-0"
    assert payload[0]["photo_ids"] == ["IMG_0003.jpg", "IMG_0001.jpg", "IMG_0002.jpg"]
    assert payload[0]["time_window"] == {"start": "2024-06-01T12:00:00", "end": "2024-06-01T12:00:04"}


def test_cli_rejects_invalid_threshold(tmp_path: Path) -> None:
    """An out-of-range threshold makes the CLI fail."""

    _album(tmp_path)
    app = typer.Typer()
    app.command()(main)

    result = CliRunner().invoke(app, ["--root", str(tmp_path), "--threshold", "1.5"])

    assert result.exit_code != 0
