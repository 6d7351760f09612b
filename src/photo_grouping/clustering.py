"""Average-linkage agglomerative clustering over a similarity matrix."""

from __future__ import annotations

import threading
from collections.abc import Sequence

import numpy as np

from photo_grouping.config import GroupingOptions
from photo_grouping.errors import GroupingCancelledError
from photo_grouping.models import PhotoCluster, SimilarityMatrix
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "clustering"})


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a running job."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str) -> None:
        if self._event.is_set():
            raise GroupingCancelledError(f"Grouping cancelled during {where}")


def average_linkage(matrix: np.ndarray, lhs: Sequence[int], rhs: Sequence[int]) -> float:
    """Mean pairwise similarity between the members of two clusters."""

    if not lhs or not rhs:
        return 0.0
    return float(matrix[np.ix_(lhs, rhs)].mean())


def intra_cluster_similarity(matrix: np.ndarray, members: Sequence[int]) -> float:
    """Mean similarity over all unordered member pairs; 0 for singletons."""

    total = 0.0
    comparisons = 0
    for position, first in enumerate(members):
        for second in members[position + 1 :]:
            total += float(matrix[first, second])
            comparisons += 1
    return total / comparisons if comparisons else 0.0


def _find_best_pair(matrix: np.ndarray, partition: Sequence[Sequence[int]]) -> tuple[float, int, int]:
    """Return ``(similarity, i, j)`` of the most similar pair, first found wins ties."""

    best_similarity = -1.0
    best_pair = (0, 0)
    for i in range(len(partition)):
        for j in range(i + 1, len(partition)):
            similarity = average_linkage(matrix, partition[i], partition[j])
            if similarity > best_similarity:
                best_similarity = similarity
                best_pair = (i, j)
    return best_similarity, best_pair[0], best_pair[1]


def agglomerate(
    similarity: SimilarityMatrix,
    options: GroupingOptions,
    cancel_token: CancellationToken | None = None,
) -> list[list[int]]:
    """Run the merge loop and return the final partition as index lists.

    The partition starts as singletons. Each iteration removes the best pair
    and appends their union at the end. The loop stops for good when the best
    similarity drops below the threshold, or when the best merge would exceed
    ``max_group_size``; in the latter case no other candidate is tried.
    """

    matrix = similarity.matrix
    partition: list[list[int]] = [[index] for index in range(len(similarity))]

    while len(partition) > 1:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("clustering")

        best_similarity, i, j = _find_best_pair(matrix, partition)
        if best_similarity < options.similarity_threshold:
            LOGGER.debug("clustering_stop_threshold", extra={"best_similarity": round(best_similarity, 4)})
            break

        merged = partition[i] + partition[j]
        if len(merged) > options.max_group_size:
            LOGGER.info(
                "clustering_stop_oversize",
                extra={"candidate_size": len(merged), "max_group_size": options.max_group_size},
            )
            break

        partition = [cluster for index, cluster in enumerate(partition) if index not in (i, j)]
        partition.append(merged)

    return partition


def hierarchical_clustering(
    similarity: SimilarityMatrix,
    options: GroupingOptions,
    cancel_token: CancellationToken | None = None,
) -> list[PhotoCluster]:
    """Cluster a session and keep only clusters within the configured size bounds.

    Returned clusters carry membership and confidence only; time windows and
    dominant features are attached later by the cluster enhancer.
    """

    partition = agglomerate(similarity, options, cancel_token)

    clusters: list[PhotoCluster] = []
    dropped = 0
    for members in partition:
        if not options.min_group_size <= len(members) <= options.max_group_size:
            dropped += len(members)
            continue

        confidence = intra_cluster_similarity(similarity.matrix, members)
        clusters.append(
            PhotoCluster(
                id=f"cluster-{len(clusters)}",
                photo_ids=tuple(similarity.photo_ids[index] for index in members),
                confidence=confidence,
                avg_similarity=confidence,
            )
        )

    LOGGER.info(
        "clustering_complete",
        extra={"clusters": len(clusters), "unclustered_photos": dropped, "partition_size": len(partition)},
    )
    return clusters


__all__ = [
    "CancellationToken",
    "average_linkage",
    "intra_cluster_similarity",
    "agglomerate",
    "hierarchical_clustering",
]
