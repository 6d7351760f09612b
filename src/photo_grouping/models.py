"""Value types shared by the grouping pipeline.

Every entity lives only for the duration of one grouping call. They are
frozen dataclasses; derived versions are produced with
:func:`dataclasses.replace` rather than by mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import numpy as np

HISTOGRAM_BINS = 64


@dataclass(frozen=True)
class FaceBox:
    """Face bounding box as produced by the upstream face detector.

    Coordinates are fractions of the frame unless ``normalized`` is False, in
    which case they are pixels of the original photo.
    """

    x: float
    y: float
    width: float
    height: float
    normalized: bool = True


def _unit_is_normalized(unit: Any) -> bool:
    if unit is None:
        return True
    return str(unit).lower() not in {"px", "pixel", "pixels"}


@dataclass(frozen=True)
class FaceAnalysis:
    """Cached upstream face-analysis output for one detected face."""

    bounding_box: FaceBox
    face_id: str | None = None
    confidence: float | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "FaceAnalysis":
        box_raw = payload.get("bounding_box") or payload.get("boundingBox") or {}
        box = FaceBox(
            x=float(box_raw.get("x", 0.0)),
            y=float(box_raw.get("y", 0.0)),
            width=float(box_raw.get("width", 0.0)),
            height=float(box_raw.get("height", 0.0)),
            normalized=_unit_is_normalized(box_raw.get("unit", payload.get("unit"))),
        )
        face_id = payload.get("face_id") or payload.get("faceId")
        confidence = payload.get("confidence")
        return cls(
            bounding_box=box,
            face_id=str(face_id) if face_id is not None else None,
            confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
        )


@dataclass(frozen=True)
class PhotoRecord:
    """One photo as returned by the photo catalog."""

    photo_id: str
    pixel_ref: Any
    captured_at: datetime
    width: int | None = None
    height: int | None = None
    file_size: int = 0
    quality_score: float = 0.0
    faces: tuple[FaceAnalysis, ...] = ()


@dataclass(frozen=True)
class FacePosition:
    """Face centre and area, normalized to the photo frame."""

    center_x: float
    center_y: float
    area: float


@dataclass(frozen=True)
class GroupingFeatures:
    """Per-photo feature vector used only for pairwise comparison."""

    photo_id: str
    timestamp: datetime
    color_histogram: np.ndarray
    composition_score: float
    face_count: int
    face_positions: tuple[FacePosition, ...]
    scene_complexity: float
    width: int
    height: int
    aspect_ratio: float
    file_size: int
    quality_score: float
    faces: tuple[FaceAnalysis, ...] = ()
    time_delta: float | None = None
    degraded: bool = False


@dataclass(frozen=True)
class SimilarityMatrix:
    """Symmetric N×N similarity matrix and the photo ids labelling its rows."""

    matrix: np.ndarray
    photo_ids: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.photo_ids)


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class DominantFeatures:
    avg_color_histogram: tuple[float, ...] = ()
    common_aspect_ratios: tuple[float, ...] = ()
    avg_face_count: float = 0.0


@dataclass(frozen=True)
class PhotoCluster:
    """A group of near-duplicate / burst photos."""

    id: str
    photo_ids: tuple[str, ...]
    confidence: float
    avg_similarity: float
    time_window: TimeWindow | None = None
    dominant_features: DominantFeatures = field(default_factory=DominantFeatures)

    @property
    def size(self) -> int:
        return len(self.photo_ids)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation of the cluster."""

        window = None
        if self.time_window is not None:
            window = {
                "start": self.time_window.start.isoformat(),
                "end": self.time_window.end.isoformat(),
            }
        return {
            "id": self.id,
            "photo_ids": list(self.photo_ids),
            "confidence": self.confidence,
            "avg_similarity": self.avg_similarity,
            "time_window": window,
            "dominant_features": {
                "avg_color_histogram": list(self.dominant_features.avg_color_histogram),
                "common_aspect_ratios": list(self.dominant_features.common_aspect_ratios),
                "avg_face_count": self.dominant_features.avg_face_count,
            },
        }


class GroupingStatus(str, Enum):
    EXTRACTING_FEATURES = "extracting_features"
    CALCULATING_SIMILARITY = "calculating_similarity"
    CLUSTERING = "clustering"
    CREATING_GROUPS = "creating_groups"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class GroupingProgress:
    """Ephemeral progress event for one grouping run."""

    session_id: str
    current_step: str
    current_photo: int
    total_photos: int
    percentage: int
    status: GroupingStatus
    message: str
    current_photo_id: str | None = None
    attempt: int = 0


__all__ = [
    "HISTOGRAM_BINS",
    "FaceBox",
    "FaceAnalysis",
    "PhotoRecord",
    "FacePosition",
    "GroupingFeatures",
    "SimilarityMatrix",
    "TimeWindow",
    "DominantFeatures",
    "PhotoCluster",
    "GroupingStatus",
    "GroupingProgress",
]
