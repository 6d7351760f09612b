"""Tests for pairwise similarity scoring and the similarity matrix."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import numpy as np
import pytest

from conftest import BASE_TIME, make_photo, make_scene
from photo_grouping.config import SimilarityWeights
from photo_grouping.features import FeatureExtractor
from photo_grouping.models import FacePosition, GroupingFeatures
from photo_grouping.similarity import (
    BURST_BONUS,
    build_similarity_matrix,
    face_count_similarity,
    face_position_similarity,
    histogram_correlation,
    score_similarity,
)

WEIGHTS = SimilarityWeights()


def _basic(photo_id: str, seconds: float, **changes: object) -> GroupingFeatures:
    features = FeatureExtractor(None).extract_basic(make_photo(photo_id, seconds))
    return replace(features, **changes) if changes else features


def _pixel(photo_id: str, seconds: float, seed: int = 0) -> GroupingFeatures:
    photo = make_photo(photo_id, seconds, image=make_scene(seed=seed))
    return FeatureExtractor(_Passthrough()).extract(photo)


class _Passthrough:
    def load(self, pixel_ref):
        return pixel_ref


def test_histogram_correlation_zero_variance_is_zero() -> None:
    """Correlation is 0 when a histogram has no variance."""

    flat = np.full(64, 1.0 / 64)
    varied = np.linspace(0.0, 1.0, 64)

    assert histogram_correlation(flat, varied) == 0.0
    assert histogram_correlation(np.zeros(64), np.zeros(64)) == 0.0
    assert histogram_correlation(varied, varied) == pytest.approx(1.0)


def test_face_similarity_degenerate_cases() -> None:
    """Empty and mismatched face sets have fixed similarities."""

    face = FacePosition(center_x=0.5, center_y=0.5, area=0.1)

    assert face_position_similarity([], []) == 1.0
    assert face_position_similarity([face], []) == 0.0
    assert face_position_similarity([face], [face]) == pytest.approx(1.0)
    assert face_count_similarity(0, 0) == 1.0
    assert face_count_similarity(1, 3) == pytest.approx(1 / 3)


def test_face_position_similarity_greedy_best_match() -> None:
    """Each face is matched to its best counterpart regardless of order."""

    left = FacePosition(center_x=0.25, center_y=0.5, area=0.04)
    right = FacePosition(center_x=0.75, center_y=0.5, area=0.04)

    # each face in the first photo finds its twin in the second, order independent
    assert face_position_similarity([left, right], [right, left]) == pytest.approx(1.0)
    assert face_position_similarity([left], [right]) == pytest.approx((0.5 + 1.0) / 2)


def test_score_in_unit_interval_for_degenerate_inputs() -> None:
    """Extreme feature differences clamp the score to 0."""

    lhs = _basic("a", 0, scene_complexity=0.0, composition_score=0.0, aspect_ratio=4.0)
    rhs = _basic("b", 3600, scene_complexity=45.0, composition_score=1.0, aspect_ratio=0.5)

    score = score_similarity(lhs, rhs, WEIGHTS)

    assert 0.0 <= score <= 1.0
    assert score == 0.0


def test_identical_burst_photos_clamp_to_one() -> None:
    """Identical photos two seconds apart clamp to 1."""

    assert score_similarity(_pixel("a", 0), _pixel("b", 2), WEIGHTS) == 1.0


def test_temporal_decay_is_monotonic() -> None:
    """A longer time gap never scores higher."""

    anchor = _basic("a", 0)

    near = score_similarity(anchor, _basic("b", 5), WEIGHTS)
    far = score_similarity(anchor, _basic("c", 120), WEIGHTS)

    assert near >= far


def test_burst_bonus_applies_below_ten_seconds() -> None:
    """The burst bonus switches off at ten seconds."""

    anchor = _basic("a", 0)

    inside = score_similarity(anchor, _basic("b", 9.9), WEIGHTS)
    outside = score_similarity(anchor, _basic("c", 10.1), WEIGHTS)

    assert inside - outside == pytest.approx(BURST_BONUS, abs=0.01)


def test_identical_visuals_far_apart_fall_below_default_threshold() -> None:
    """Ten minutes apart, identical visuals score just visual plus metadata."""

    score = score_similarity(_pixel("a", 0), _pixel("b", 600), WEIGHTS)

    assert score < 0.55
    assert score == pytest.approx(WEIGHTS.visual + WEIGHTS.metadata, abs=1e-3)


def test_similarity_matrix_is_symmetric_with_unit_diagonal() -> None:
    """The matrix is symmetric, bounded and 1 on the diagonal."""

    features = [_pixel(f"p{index}", index * 7.0, seed=index) for index in range(5)]
    features.append(_basic("fallback", 400))

    result = build_similarity_matrix(features, WEIGHTS)

    assert result.photo_ids == ("p0", "p1", "p2", "p3", "p4", "fallback")
    assert result.matrix.shape == (6, 6)
    assert np.array_equal(result.matrix, result.matrix.T)
    assert np.all(np.diag(result.matrix) == 1.0)
    assert np.all((result.matrix >= 0.0) & (result.matrix <= 1.0))


def test_single_photo_matrix() -> None:
    """A single photo gives a 1x1 matrix."""

    result = build_similarity_matrix([_basic("only", 0)], WEIGHTS)

    assert result.matrix.tolist() == [[1.0]]


def test_score_uses_absolute_time_difference() -> None:
    """Scoring is symmetric in its arguments."""

    lhs = _basic("a", 30)
    rhs = replace(_basic("b", 0), timestamp=BASE_TIME + timedelta(seconds=0))

    assert score_similarity(lhs, rhs, WEIGHTS) == score_similarity(rhs, lhs, WEIGHTS)
