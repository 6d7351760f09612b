"""Attach time windows and dominant features to clusters."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

import numpy as np

from photo_grouping.models import DominantFeatures, GroupingFeatures, PhotoCluster, TimeWindow


def enhance_clusters(clusters: Sequence[PhotoCluster], features: Sequence[GroupingFeatures]) -> list[PhotoCluster]:
    """Return copies of ``clusters`` with summary metadata filled in.

    Clusters whose members have no features are skipped.
    """

    by_id = {feature.photo_id: feature for feature in features}
    enhanced: list[PhotoCluster] = []

    for cluster in clusters:
        members = [by_id[photo_id] for photo_id in cluster.photo_ids if photo_id in by_id]
        if not members:
            continue

        timestamps = [member.timestamp for member in members]
        avg_histogram = np.mean(np.stack([member.color_histogram for member in members]), axis=0)
        aspect_ratios = tuple(dict.fromkeys(member.aspect_ratio for member in members))
        avg_face_count = sum(member.face_count for member in members) / len(members)

        enhanced.append(
            replace(
                cluster,
                time_window=TimeWindow(start=min(timestamps), end=max(timestamps)),
                dominant_features=DominantFeatures(
                    avg_color_histogram=tuple(float(value) for value in avg_histogram),
                    common_aspect_ratios=aspect_ratios,
                    avg_face_count=avg_face_count,
                ),
            )
        )

    return enhanced


__all__ = ["enhance_clusters"]
