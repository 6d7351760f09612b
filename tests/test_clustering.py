"""Tests for the average-linkage agglomerative clusterer."""

from __future__ import annotations

import numpy as np
import pytest

from photo_grouping.clustering import (
    CancellationToken,
    agglomerate,
    average_linkage,
    hierarchical_clustering,
    intra_cluster_similarity,
)
from photo_grouping.config import GroupingOptions
from photo_grouping.errors import GroupingCancelledError
from photo_grouping.models import SimilarityMatrix


def _matrix(values: np.ndarray) -> SimilarityMatrix:
    ids = tuple(f"p{index:02d}" for index in range(values.shape[0]))
    return SimilarityMatrix(matrix=values, photo_ids=ids)


def _block_matrix(size: int, value: float = 1.0) -> np.ndarray:
    return np.full((size, size), value)


def test_average_linkage_is_mean_of_cross_pairs() -> None:
    """Linkage averages cross-cluster pairs; intra similarity averages member pairs."""

    values = np.array(
        [
            [1.0, 0.8, 0.2],
            [0.8, 1.0, 0.4],
            [0.2, 0.4, 1.0],
        ]
    )

    assert average_linkage(values, [0, 1], [2]) == pytest.approx(0.3)
    assert intra_cluster_similarity(values, [0, 1, 2]) == pytest.approx((0.8 + 0.2 + 0.4) / 3)
    assert intra_cluster_similarity(values, [1]) == 0.0


def test_merges_until_threshold() -> None:
    """Pairs above the threshold merge; the loop stops at the first best pair below it."""

    values = np.array(
        [
            [1.0, 0.9, 0.1, 0.1],
            [0.9, 1.0, 0.1, 0.1],
            [0.1, 0.1, 1.0, 0.7],
            [0.1, 0.1, 0.7, 1.0],
        ]
    )

    clusters = hierarchical_clustering(_matrix(values), GroupingOptions(similarity_threshold=0.6))

    assert [cluster.photo_ids for cluster in clusters] == [("p00", "p01"), ("p02", "p03")]
    assert clusters[0].confidence == pytest.approx(0.9)
    assert clusters[1].confidence == pytest.approx(0.7)
    assert [cluster.id for cluster in clusters] == ["cluster-0", "cluster-1"]


def test_threshold_stops_all_merging() -> None:
    """A best pair below the threshold leaves every photo unclustered."""

    values = np.array([[1.0, 0.5], [0.5, 1.0]])

    clusters = hierarchical_clustering(_matrix(values), GroupingOptions(similarity_threshold=0.55))

    assert clusters == []


def test_ties_break_on_first_pair_in_scan_order() -> None:
    """Equal best pairs resolve to the first one found in scan order."""

    values = np.array(
        [
            [1.0, 0.9, 0.0],
            [0.9, 1.0, 0.9],
            [0.0, 0.9, 1.0],
        ]
    )

    partition = agglomerate(_matrix(values), GroupingOptions(similarity_threshold=0.5))

    # (0, 1) and (1, 2) tie; the first found wins, then average linkage 0.45 stops the loop.
    assert partition == [[2], [0, 1]]


def test_stop_on_oversize_halts_whole_loop() -> None:
    """An oversize best merge ends clustering without trying the next candidate."""

    values = np.zeros((14, 14))
    values[:12, :12] = 1.0
    values[12:, 12:] = 0.8
    np.fill_diagonal(values, 1.0)

    options = GroupingOptions(similarity_threshold=0.55, max_group_size=10)
    partition = agglomerate(_matrix(values), options)
    clusters = hierarchical_clustering(_matrix(values), options)

    # The 8+4 merge would make 12 > 10, so the loop ends there and the
    # still-eligible (12, 13) pair is never merged.
    assert partition == [[12], [13], [8, 9, 10, 11], [0, 1, 2, 3, 4, 5, 6, 7]]
    assert [cluster.photo_ids for cluster in clusters] == [
        ("p08", "p09", "p10", "p11"),
        ("p00", "p01", "p02", "p03", "p04", "p05", "p06", "p07"),
    ]


def test_returned_clusters_respect_size_bounds() -> None:
    """Every returned cluster lies within the min and max group size."""

    rng = np.random.default_rng(3)
    raw = rng.uniform(0.3, 1.0, size=(20, 20))
    values = (raw + raw.T) / 2
    np.fill_diagonal(values, 1.0)
    options = GroupingOptions(similarity_threshold=0.5, min_group_size=3, max_group_size=5)

    clusters = hierarchical_clustering(_matrix(values), options)

    assert clusters
    for cluster in clusters:
        assert options.min_group_size <= cluster.size <= options.max_group_size


def test_clustering_is_deterministic() -> None:
    """The same matrix and options always give the same clusters."""

    rng = np.random.default_rng(11)
    raw = rng.uniform(0.0, 1.0, size=(15, 15))
    values = (raw + raw.T) / 2
    np.fill_diagonal(values, 1.0)
    options = GroupingOptions(similarity_threshold=0.4, max_group_size=6)

    first = hierarchical_clustering(_matrix(values), options)
    second = hierarchical_clustering(_matrix(values.copy()), options)

    assert first == second


def test_singletons_are_dropped_not_returned() -> None:
    """Clusters below the minimum size are dropped from the result."""

    values = np.array(
        [
            [1.0, 0.95, 0.0],
            [0.95, 1.0, 0.0],
            [0.0, 0.0, 1.0],
        ]
    )

    clusters = hierarchical_clustering(_matrix(values), GroupingOptions())

    assert [cluster.photo_ids for cluster in clusters] == [("p00", "p01")]


def test_cancelled_token_aborts_clustering() -> None:
    """A cancelled token stops the merge loop with GroupingCancelledError."""

    token = CancellationToken()
    token.cancel()

    with pytest.raises(GroupingCancelledError):
        agglomerate(_matrix(_block_matrix(3)), GroupingOptions(), token)
