"""Burst / near-duplicate photo grouping engine.

The work is split into small modules:

- :mod:`photo_grouping.config` - settings, per-run options and the retry policy.
- :mod:`photo_grouping.models` - feature vectors, similarity matrices, clusters and progress events.
- :mod:`photo_grouping.features` - per-photo colour, composition, complexity and face features.
- :mod:`photo_grouping.similarity` - pairwise scoring and the session similarity matrix.
- :mod:`photo_grouping.clustering` - average-linkage agglomerative clustering.
- :mod:`photo_grouping.enhancer` - time windows and dominant features per cluster.
- :mod:`photo_grouping.catalog` - photo lookup and pixel decoding collaborators.
- :mod:`photo_grouping.orchestrator` - the batched, retrying pipeline with progress events.
- :mod:`photo_grouping.cli` - command line entry point for grouping an album directory.
"""

from photo_grouping.capabilities import CapabilityDescriptor, DependencyReport
from photo_grouping.catalog import InMemoryPhotoCatalog, PillowPixelDecoder
from photo_grouping.clustering import CancellationToken
from photo_grouping.config import GroupingOptions, Settings, SimilarityWeights, load_settings
from photo_grouping.errors import (
    DependencyUnavailableError,
    GroupingCancelledError,
    GroupingError,
    TransientError,
    UnknownError,
    ValidationError,
)
from photo_grouping.models import GroupingProgress, GroupingStatus, PhotoCluster, PhotoRecord
from photo_grouping.orchestrator import GroupingOrchestrator

__all__ = [
    "CapabilityDescriptor",
    "DependencyReport",
    "InMemoryPhotoCatalog",
    "PillowPixelDecoder",
    "CancellationToken",
    "GroupingOptions",
    "Settings",
    "SimilarityWeights",
    "load_settings",
    "DependencyUnavailableError",
    "GroupingCancelledError",
    "GroupingError",
    "TransientError",
    "UnknownError",
    "ValidationError",
    "GroupingProgress",
    "GroupingStatus",
    "PhotoCluster",
    "PhotoRecord",
    "GroupingOrchestrator",
]
