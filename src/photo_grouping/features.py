"""Per-photo feature extraction for burst grouping.

Pixel features (colour histogram, rule-of-thirds composition and local
texture complexity) are computed with numpy on a downscaled RGB copy of the
photo. Face positions are read from the upstream face-analysis output and
are never recomputed here.

Extraction never raises for a single photo: if the decoder or the pixel math
fails, a basic feature set is returned instead so one bad file cannot abort a
whole batch.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Final

import numpy as np
from PIL import Image
from PIL.Image import Resampling

from photo_grouping.catalog import PixelDecoder
from photo_grouping.config import FeatureConfig
from photo_grouping.models import HISTOGRAM_BINS, FaceAnalysis, FacePosition, GroupingFeatures, PhotoRecord
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "features"})

NEUTRAL_SCORE: Final[float] = 0.5
_LEVELS_PER_CHANNEL: Final[int] = 4
_LUMA_WEIGHTS: Final[np.ndarray] = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def _to_rgb_array(image: Image.Image, max_side: int) -> np.ndarray:
    """Return an ``(H, W, 3)`` uint8 array of ``image`` no larger than ``max_side``."""

    rgb = image.convert("RGB")
    if max(rgb.size) > max_side:
        rgb = rgb.copy()
        rgb.thumbnail((max_side, max_side), resample=Resampling.LANCZOS)
    return np.asarray(rgb, dtype=np.uint8)


def _to_gray(pixels: np.ndarray) -> np.ndarray:
    return pixels.astype(np.float64) @ _LUMA_WEIGHTS


def color_histogram(pixels: np.ndarray) -> np.ndarray:
    """Joint RGB histogram with 4 levels per channel (64 bins), normalized to sum to 1."""

    if pixels.size == 0:
        return np.zeros(HISTOGRAM_BINS, dtype=np.float64)

    bin_width = 256 // _LEVELS_PER_CHANNEL
    quantized = pixels.reshape(-1, 3).astype(np.int64) // bin_width
    index = (quantized[:, 0] * _LEVELS_PER_CHANNEL + quantized[:, 1]) * _LEVELS_PER_CHANNEL + quantized[:, 2]
    counts = np.bincount(index, minlength=HISTOGRAM_BINS).astype(np.float64)
    return counts / float(quantized.shape[0])


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude; the one-pixel border is left at zero."""

    height, width = gray.shape
    edges = np.zeros_like(gray, dtype=np.float64)
    if height < 3 or width < 3:
        return edges

    top_left = gray[:-2, :-2]
    top = gray[:-2, 1:-1]
    top_right = gray[:-2, 2:]
    left = gray[1:-1, :-2]
    right = gray[1:-1, 2:]
    bottom_left = gray[2:, :-2]
    bottom = gray[2:, 1:-1]
    bottom_right = gray[2:, 2:]

    gx = (top_right + 2.0 * right + bottom_right) - (top_left + 2.0 * left + bottom_left)
    gy = (bottom_left + 2.0 * bottom + bottom_right) - (top_left + 2.0 * top + top_right)
    edges[1:-1, 1:-1] = np.hypot(gx, gy)
    return edges


def composition_score(gray: np.ndarray) -> float:
    """Share of edge energy lying close to the rule-of-thirds gridlines, in [0, 1]."""

    height, width = gray.shape
    edges = sobel_magnitude(gray)
    total = float(edges.sum())
    if total <= 0.0:
        return 0.0

    third_x = width / 3.0
    third_y = height / 3.0
    xs = np.arange(width, dtype=np.float64)
    ys = np.arange(height, dtype=np.float64)
    dist_x = np.minimum(np.abs(xs - third_x), np.abs(xs - 2.0 * third_x))
    dist_y = np.minimum(np.abs(ys - third_y), np.abs(ys - 2.0 * third_y))

    weights = np.clip(1.0 - (dist_y[:, None] + dist_x[None, :]) / (third_x + third_y), 0.0, None)
    return float(np.clip((edges * weights).sum() / total, 0.0, 1.0))


def scene_complexity(gray: np.ndarray, stride: int = 5) -> float:
    """Mean local intensity standard deviation sampled on a coarse grid.

    Windows are ``(2 * stride + 1)`` pixels square and centred every
    ``stride`` pixels, skipping centres closer than ``stride`` to the border.
    """

    window = 2 * stride + 1
    height, width = gray.shape
    if height < window or width < window:
        return 0.0

    windows = np.lib.stride_tricks.sliding_window_view(gray, (window, window))[::stride, ::stride]
    local_std = windows.std(axis=(-2, -1))
    return float(local_std.mean())


def face_positions(faces: Sequence[FaceAnalysis], width: int, height: int) -> tuple[FacePosition, ...]:
    """Normalized centre and area of each upstream face box.

    Pixel boxes (``normalized=False``) are scaled by the photo dimensions.
    """

    positions: list[FacePosition] = []
    for face in faces:
        box = face.bounding_box
        in_pixels = not box.normalized
        scale_x = float(width) if in_pixels and width > 0 else 1.0
        scale_y = float(height) if in_pixels and height > 0 else 1.0
        x = box.x / scale_x
        y = box.y / scale_y
        w = box.width / scale_x
        h = box.height / scale_y
        positions.append(FacePosition(center_x=x + w / 2.0, center_y=y + h / 2.0, area=w * h))
    return tuple(positions)


class FeatureExtractor:
    """Compute :class:`GroupingFeatures` for photo records."""

    def __init__(self, decoder: PixelDecoder | None, config: FeatureConfig | None = None) -> None:
        self._decoder = decoder
        self._config = config or FeatureConfig()

    def extract(self, photo: PhotoRecord) -> GroupingFeatures:
        """Extract features for one photo, degrading to basic features on failure."""

        if self._decoder is None:
            LOGGER.warning("feature_decoder_unavailable", extra={"photo_id": photo.photo_id})
            return self.extract_basic(photo)

        try:
            image = self._decoder.load(photo.pixel_ref)
            pixels = _to_rgb_array(image, self._config.analysis_max_side)
            gray = _to_gray(pixels)
            histogram = color_histogram(pixels)
            composition = composition_score(gray)
            complexity = scene_complexity(gray, self._config.complexity_stride)
            image_width, image_height = image.size
        except Exception as exc:
            LOGGER.warning(
                "feature_extraction_degraded",
                extra={"photo_id": photo.photo_id, "error": str(exc), "error_type": type(exc).__name__},
            )
            return self.extract_basic(photo)

        width = photo.width or image_width
        height = photo.height or image_height
        positions = face_positions(photo.faces, width, height)

        features = GroupingFeatures(
            photo_id=photo.photo_id,
            timestamp=photo.captured_at,
            color_histogram=histogram,
            composition_score=composition,
            face_count=len(positions),
            face_positions=positions,
            scene_complexity=complexity,
            width=width,
            height=height,
            aspect_ratio=width / height if height else 0.0,
            file_size=photo.file_size,
            quality_score=photo.quality_score,
            faces=tuple(photo.faces),
        )
        LOGGER.debug(
            "features_extracted",
            extra={
                "photo_id": photo.photo_id,
                "face_count": features.face_count,
                "composition_score": round(composition, 4),
                "scene_complexity": round(complexity, 4),
            },
        )
        return features

    def extract_basic(self, photo: PhotoRecord) -> GroupingFeatures:
        """Feature set that needs no pixel access: neutral visual scores, faces from cached boxes."""

        width = photo.width or self._config.default_width
        height = photo.height or self._config.default_height
        positions = face_positions(photo.faces, width, height)

        return GroupingFeatures(
            photo_id=photo.photo_id,
            timestamp=photo.captured_at,
            color_histogram=np.zeros(HISTOGRAM_BINS, dtype=np.float64),
            composition_score=NEUTRAL_SCORE,
            face_count=len(positions),
            face_positions=positions,
            scene_complexity=NEUTRAL_SCORE,
            width=width,
            height=height,
            aspect_ratio=width / height,
            file_size=photo.file_size,
            quality_score=photo.quality_score,
            faces=tuple(photo.faces),
            degraded=True,
        )

    def extract_batch(self, photos: Sequence[PhotoRecord]) -> list[GroupingFeatures]:
        """Extract one batch, in parallel when configured, preserving input order."""

        workers = min(max(1, self._config.max_workers), len(photos))
        if workers <= 1:
            return [self.extract(photo) for photo in photos]

        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self.extract, photos))


__all__ = [
    "NEUTRAL_SCORE",
    "FeatureExtractor",
    "color_histogram",
    "sobel_magnitude",
    "composition_score",
    "scene_complexity",
    "face_positions",
]
