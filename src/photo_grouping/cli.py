"""CLI entrypoint that groups one album directory and prints the clusters as JSON.

The directory is treated as a single capture session. Face boxes produced by
an upstream detector can be supplied as a JSON file mapping file names to
lists of ``{"bounding_box": {"x", "y", "width", "height"}}`` entries. Boxes are
0-1 ratios unless the box or entry carries ``"unit": "px"``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer

from photo_grouping.capabilities import probe_capabilities
from photo_grouping.catalog import DirectoryPhotoCatalog, PillowPixelDecoder
from photo_grouping.config import Settings, load_settings
from photo_grouping.models import GroupingProgress
from photo_grouping.orchestrator import GroupingOrchestrator
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def _load_face_index(path: Path | None) -> dict[str, list[dict[str, Any]]]:
    if path is None:
        return {}
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise typer.BadParameter("faces file must contain a JSON object keyed by file name", param_hint="--faces")
    return {str(key): value for key, value in raw.items() if isinstance(value, list)}


def _apply_cli_overrides(
    settings: Settings,
    threshold: float | None,
    max_group_size: int | None,
    min_group_size: int | None,
    batch_size: int | None,
) -> Settings:
    """Apply CLI overrides for the grouping options to the settings."""

    settings.grouping = settings.grouping.merged(
        similarity_threshold=threshold,
        max_group_size=max_group_size,
        min_group_size=min_group_size,
        batch_size=batch_size,
    )
    return settings


def _log_progress(progress: GroupingProgress) -> None:
    LOGGER.info(
        "grouping_progress",
        extra={"status": progress.status.value, "percentage": progress.percentage, "detail": progress.message},
    )


def main(
    root: Path = typer.Option(
        ...,
        "--root",
        file_okay=False,
        dir_okay=True,
        exists=True,
        readable=True,
        help="Album directory holding one capture session.",
    ),
    faces: Path | None = typer.Option(
        None,
        "--faces",
        file_okay=True,
        dir_okay=False,
        exists=True,
        readable=True,
        help="JSON file with cached face boxes keyed by file name.",
    ),
    threshold: float | None = typer.Option(
        None,
        "--threshold",
        help="Override grouping.similarity_threshold from settings.yaml.",
    ),
    max_group_size: int | None = typer.Option(None, "--max-group-size", help="Largest group to form."),
    min_group_size: int | None = typer.Option(None, "--min-group-size", help="Smallest group to report."),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        help="Photos per feature extraction batch (1-50).",
    ),
    settings_path: Path | None = typer.Option(
        None,
        "--settings",
        help="Settings YAML file; defaults to config/settings.yaml or $PHOTO_GROUPING_SETTINGS.",
    ),
    output: Path | None = typer.Option(None, "--output", help="Write the JSON result here instead of stdout."),
) -> None:
    """Group burst and near-duplicate photos of one album directory."""

    settings = load_settings(settings_path)
    settings = _apply_cli_overrides(settings, threshold, max_group_size, min_group_size, batch_size)

    orchestrator = GroupingOrchestrator(
        catalog=DirectoryPhotoCatalog(face_index=_load_face_index(faces)),
        decoder=PillowPixelDecoder(),
        capabilities=probe_capabilities(),
        settings=settings,
    )

    session_id = str(root.resolve())
    unsubscribe = orchestrator.subscribe(session_id, _log_progress)
    try:
        clusters = orchestrator.group(session_id)
    finally:
        unsubscribe()

    payload = json.dumps([cluster.to_dict() for cluster in clusters], indent=2)
    if output is not None:
        output.write_text(payload + "\n", encoding="utf-8")
        LOGGER.info("grouping_result_written", extra={"path": str(output), "groups": len(clusters)})
    else:
        typer.echo(payload)


def run() -> None:
    typer.run(main)


if __name__ == "__main__":
    run()


__all__ = ["main", "run"]
