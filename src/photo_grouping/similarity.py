"""Pairwise similarity scoring and the session similarity matrix."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Final

import numpy as np

from photo_grouping.config import SimilarityWeights
from photo_grouping.models import FacePosition, GroupingFeatures, SimilarityMatrix
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "similarity"})

TEMPORAL_DECAY_SECONDS: Final[float] = 60.0
BURST_WINDOW_SECONDS: Final[float] = 10.0
BURST_BONUS: Final[float] = 0.15

HISTOGRAM_WEIGHT: Final[float] = 0.4
COMPOSITION_WEIGHT: Final[float] = 0.2
COMPLEXITY_WEIGHT: Final[float] = 0.2
FACE_COUNT_WEIGHT: Final[float] = 0.1
FACE_POSITION_WEIGHT: Final[float] = 0.1

_LOGGED_PAIR_LIMIT: Final[int] = 5


def _ratio_similarity(lhs: float, rhs: float) -> float:
    """``1 - |a - b| / max(a, b)``; two zero values count as identical."""

    largest = max(lhs, rhs)
    if largest <= 0.0:
        return 1.0
    return 1.0 - abs(lhs - rhs) / largest


def histogram_correlation(lhs: np.ndarray, rhs: np.ndarray) -> float:
    """Pearson correlation of two histograms; 0 when either has zero variance."""

    if lhs.shape != rhs.shape or lhs.size == 0:
        return 0.0

    lhs_centered = lhs - lhs.mean()
    rhs_centered = rhs - rhs.mean()
    denominator = math.sqrt(float(np.dot(lhs_centered, lhs_centered)) * float(np.dot(rhs_centered, rhs_centered)))
    if denominator <= 0.0:
        return 0.0
    return float(np.dot(lhs_centered, rhs_centered)) / denominator


def face_count_similarity(lhs: int, rhs: int) -> float:
    return 1.0 - abs(lhs - rhs) / max(lhs, rhs, 1)


def face_position_similarity(lhs: Sequence[FacePosition], rhs: Sequence[FacePosition]) -> float:
    """Greedy best-match similarity of face layouts.

    Each face in ``lhs`` is matched to the face in ``rhs`` with the highest
    mean of proximity and area similarity; the per-face best scores are
    averaged.
    """

    if not lhs and not rhs:
        return 1.0
    if not lhs or not rhs:
        return 0.0

    total = 0.0
    for face in lhs:
        best = 0.0
        for other in rhs:
            distance = math.hypot(face.center_x - other.center_x, face.center_y - other.center_y)
            proximity = max(0.0, 1.0 - distance)
            size = _ratio_similarity(face.area, other.area)
            best = max(best, (proximity + size) / 2.0)
        total += best
    return total / len(lhs)


def temporal_similarity(delta_seconds: float) -> float:
    return math.exp(-abs(delta_seconds) / TEMPORAL_DECAY_SECONDS)


def visual_similarity(lhs: GroupingFeatures, rhs: GroupingFeatures) -> float:
    return (
        histogram_correlation(lhs.color_histogram, rhs.color_histogram) * HISTOGRAM_WEIGHT
        + (1.0 - abs(lhs.composition_score - rhs.composition_score)) * COMPOSITION_WEIGHT
        + (1.0 - abs(lhs.scene_complexity - rhs.scene_complexity)) * COMPLEXITY_WEIGHT
        + face_count_similarity(lhs.face_count, rhs.face_count) * FACE_COUNT_WEIGHT
        + face_position_similarity(lhs.face_positions, rhs.face_positions) * FACE_POSITION_WEIGHT
    )


def metadata_similarity(lhs: GroupingFeatures, rhs: GroupingFeatures) -> float:
    aspect = 1.0 - abs(lhs.aspect_ratio - rhs.aspect_ratio)
    area = _ratio_similarity(float(lhs.width * lhs.height), float(rhs.width * rhs.height))
    return (aspect + area) / 2.0


def score_similarity(lhs: GroupingFeatures, rhs: GroupingFeatures, weights: SimilarityWeights) -> float:
    """Overall similarity of two photos in [0, 1].

    Weighted temporal, visual and metadata terms plus a flat bonus for photos
    taken less than ten seconds apart.
    """

    delta = abs((lhs.timestamp - rhs.timestamp).total_seconds())
    burst_bonus = BURST_BONUS if delta < BURST_WINDOW_SECONDS else 0.0

    overall = (
        temporal_similarity(delta) * weights.temporal
        + visual_similarity(lhs, rhs) * weights.visual
        + metadata_similarity(lhs, rhs) * weights.metadata
        + burst_bonus
    )
    return max(0.0, min(1.0, overall))


def build_similarity_matrix(
    features: Sequence[GroupingFeatures],
    weights: SimilarityWeights,
    threshold: float | None = None,
) -> SimilarityMatrix:
    """Score every pair once and mirror the result; the diagonal is 1."""

    count = len(features)
    matrix = np.eye(count, dtype=np.float64)

    for i in range(count):
        for j in range(i + 1, count):
            score = score_similarity(features[i], features[j], weights)
            matrix[i, j] = score
            matrix[j, i] = score

            if i < _LOGGED_PAIR_LIMIT and j < _LOGGED_PAIR_LIMIT:
                LOGGER.debug(
                    "photo_pair_similarity",
                    extra={
                        "photo_a": features[i].photo_id,
                        "photo_b": features[j].photo_id,
                        "similarity": round(score, 3),
                        "time_diff_seconds": abs((features[i].timestamp - features[j].timestamp).total_seconds()),
                        "threshold": threshold,
                    },
                )

    return SimilarityMatrix(matrix=matrix, photo_ids=tuple(feature.photo_id for feature in features))


__all__ = [
    "TEMPORAL_DECAY_SECONDS",
    "BURST_WINDOW_SECONDS",
    "BURST_BONUS",
    "histogram_correlation",
    "face_count_similarity",
    "face_position_similarity",
    "temporal_similarity",
    "visual_similarity",
    "metadata_similarity",
    "score_similarity",
    "build_similarity_matrix",
]
