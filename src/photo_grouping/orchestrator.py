"""High-level grouping pipeline orchestration."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from photo_grouping.capabilities import (
    IMAGE_DECODING,
    PHOTO_CATALOG,
    CapabilityDescriptor,
    DependencyReport,
)
from photo_grouping.catalog import PhotoCatalog, PixelDecoder
from photo_grouping.clustering import CancellationToken, hierarchical_clustering
from photo_grouping.config import GroupingOptions, Settings, load_settings
from photo_grouping.enhancer import enhance_clusters
from photo_grouping.errors import (
    DependencyUnavailableError,
    ValidationError,
    classify_error,
    is_retryable,
)
from photo_grouping.features import FeatureExtractor
from photo_grouping.memory import MemoryMonitor
from photo_grouping.models import GroupingFeatures, GroupingProgress, GroupingStatus, PhotoCluster, PhotoRecord
from photo_grouping.progress import ProgressCallback, ProgressRegistry
from photo_grouping.similarity import build_similarity_matrix
from utils.logging import get_logger

EXTRACTION_SPAN = 30
SIMILARITY_PERCENT = 40
CLUSTERING_PERCENT = 60
CREATING_GROUPS_PERCENT = 80
COMPLETE_PERCENT = 100


@dataclass
class _RunState:
    """Mutable bookkeeping for one attempt of a grouping run."""

    session_id: str
    attempt: int
    total_photos: int = 0
    last_percentage: int | None = None


def _with_time_deltas(features: Sequence[GroupingFeatures]) -> list[GroupingFeatures]:
    """Sort by capture time and record the gap to the previous photo in seconds."""

    ordered = sorted(features, key=lambda feature: feature.timestamp)
    result: list[GroupingFeatures] = []
    for index, feature in enumerate(ordered):
        if index == 0:
            result.append(feature)
            continue
        delta = (feature.timestamp - ordered[index - 1].timestamp).total_seconds()
        result.append(replace(feature, time_delta=delta))
    return result


class GroupingOrchestrator:
    """Runs the grouping pipeline for one capture session at a time.

    Collaborators are injected: the photo catalog, the pixel decoder and a
    capability descriptor stating which vision/image capabilities the host
    provides. Independent sessions may be grouped concurrently on one
    instance; the only shared state is the progress registry.
    """

    def __init__(
        self,
        catalog: PhotoCatalog | None,
        decoder: PixelDecoder | None,
        capabilities: CapabilityDescriptor | None = None,
        settings: Settings | None = None,
        *,
        memory_monitor: MemoryMonitor | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            catalog: Photo catalog lookup collaborator.
            decoder: Pixel decoding collaborator.
            capabilities: Capabilities the host provides. Defaults to all
                available.
            settings: Optional pre-loaded settings. When omitted,
                configuration is loaded from ``config/settings.yaml``.
            memory_monitor: Post-batch memory check; built from settings when
                omitted.
            sleep: Used for retry backoff and inter-batch pauses.
        """

        self._catalog = catalog
        self._decoder = decoder
        self._capabilities = capabilities or CapabilityDescriptor.all_available()
        self._settings = settings or load_settings()
        self._memory = memory_monitor or MemoryMonitor(self._settings.memory.threshold_mb)
        self._sleep = sleep
        self._extractor = FeatureExtractor(decoder, self._settings.features)
        self._registry = ProgressRegistry()
        self._logger = get_logger(__name__, extra={"component": "orchestrator"})

    @property
    def settings(self) -> Settings:
        return self._settings

    def check_dependencies(self) -> DependencyReport:
        """Report which required capabilities are missing."""

        missing = list(self._capabilities.check().missing)
        if self._decoder is None and IMAGE_DECODING not in missing:
            missing.append(IMAGE_DECODING)
        if self._catalog is None and PHOTO_CATALOG not in missing:
            missing.append(PHOTO_CATALOG)
        return DependencyReport(available=not missing, missing=tuple(missing))

    def subscribe(self, session_id: str, callback: ProgressCallback) -> Callable[[], None]:
        """Subscribe to progress events of ``session_id``; returns the unsubscribe handle."""

        return self._registry.subscribe(session_id, callback)

    def group(
        self,
        session_id: str,
        options: GroupingOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[PhotoCluster]:
        """Group the photos of one session into burst / near-duplicate clusters.

        Retryable failures rerun the whole pipeline with a smaller batch size
        and a lower similarity threshold after an exponential backoff. Other
        failures, and the last failure once retries are exhausted, are raised
        after a terminal ``error`` progress event. Validation and dependency
        failures are raised without emitting any progress event.

        Raises:
            ValidationError: Options or the session's photos are unusable.
            DependencyUnavailableError: A required capability is missing.
            TransientError: Retryable failures persisted past the retry budget.
            UnknownError: Any other failure.
            GroupingCancelledError: ``cancel_token`` was cancelled.
        """

        policy = self._settings.retry
        current = options or self._settings.grouping

        for attempt in range(policy.max_retries + 1):
            state = _RunState(session_id=session_id, attempt=attempt)
            try:
                return self._run_once(state, current, cancel_token)
            except Exception as exc:
                error = classify_error(exc)
                self._logger.error(
                    "grouping_failed",
                    extra={
                        "session_id": session_id,
                        "error": str(error),
                        "error_type": type(error).__name__,
                        "retry_count": attempt,
                        "max_retries": policy.max_retries,
                    },
                )

                if attempt < policy.max_retries and is_retryable(error):
                    delay = policy.backoff_delay(attempt)
                    current = policy.relax(current)
                    self._logger.info(
                        "grouping_retry_scheduled",
                        extra={
                            "session_id": session_id,
                            "attempt": attempt + 1,
                            "delay_seconds": delay,
                            "batch_size": current.batch_size,
                            "similarity_threshold": round(current.similarity_threshold, 4),
                        },
                    )
                    self._sleep(delay)
                    continue

                if not isinstance(error, (ValidationError, DependencyUnavailableError)):
                    self._emit(
                        state,
                        GroupingStatus.ERROR,
                        state.last_percentage or 0,
                        f"Grouping failed: {error}",
                        current_photo=0,
                    )
                if error is exc:
                    raise
                raise error from exc

        raise AssertionError("unreachable: retry loop always returns or raises")  # pragma: no cover

    def _validate_photos(self, session_id: str, photos: Sequence[PhotoRecord], options: GroupingOptions) -> None:
        if not photos:
            raise ValidationError(f"Session {session_id} has no photos to group")
        if len(photos) < options.min_group_size:
            raise ValidationError(
                f"Session {session_id} has insufficient photos for grouping "
                f"({len(photos)} < {options.min_group_size})"
            )

    def _run_once(
        self,
        state: _RunState,
        options: GroupingOptions,
        cancel_token: CancellationToken | None,
    ) -> list[PhotoCluster]:
        session_id = state.session_id
        if not session_id or not isinstance(session_id, str):
            raise ValidationError("Valid sessionId is required")
        options.validate()

        report = self.check_dependencies()
        if not report.available:
            self._logger.error(
                "grouping_dependencies_missing",
                extra={"session_id": session_id, "missing_dependencies": list(report.missing)},
            )
            raise DependencyUnavailableError(report.missing)

        if self._catalog is None:
            raise DependencyUnavailableError((PHOTO_CATALOG,))
        photos = list(self._catalog.get_photos_by_session(session_id))
        self._validate_photos(session_id, photos, options)
        state.total_photos = len(photos)

        self._logger.info(
            "grouping_start",
            extra={
                "session_id": session_id,
                "photos": len(photos),
                "attempt": state.attempt,
                "similarity_threshold": options.similarity_threshold,
                "batch_size": options.batch_size,
                "max_group_size": options.max_group_size,
                "min_group_size": options.min_group_size,
            },
        )

        features = self._extract_features(state, photos, options, cancel_token)
        features = _with_time_deltas(features)

        self._emit(
            state,
            GroupingStatus.CALCULATING_SIMILARITY,
            SIMILARITY_PERCENT,
            "Calculating photo similarities...",
        )
        matrix = build_similarity_matrix(features, options.weights, options.similarity_threshold)

        self._emit(state, GroupingStatus.CLUSTERING, CLUSTERING_PERCENT, "Clustering similar photos...")
        clusters = hierarchical_clustering(matrix, options, cancel_token)

        self._emit(state, GroupingStatus.CREATING_GROUPS, CREATING_GROUPS_PERCENT, "Creating photo groups...")
        enhanced = enhance_clusters(clusters, features)

        self._emit(
            state,
            GroupingStatus.COMPLETE,
            COMPLETE_PERCENT,
            f"Grouping complete! Found {len(enhanced)} groups.",
        )

        avg_size = sum(cluster.size for cluster in enhanced) / len(enhanced) if enhanced else 0.0
        self._logger.info(
            "grouping_complete",
            extra={
                "session_id": session_id,
                "total_photos": len(photos),
                "groups_found": len(enhanced),
                "avg_group_size": round(avg_size, 2),
                "degraded_photos": sum(1 for feature in features if feature.degraded),
            },
        )
        return enhanced

    def _extract_features(
        self,
        state: _RunState,
        photos: Sequence[PhotoRecord],
        options: GroupingOptions,
        cancel_token: CancellationToken | None,
    ) -> list[GroupingFeatures]:
        """Extract features in sequential batches, checking memory after each one."""

        total = len(photos)
        features: list[GroupingFeatures] = []
        pause = self._settings.memory.batch_pause_seconds

        for start in range(0, total, options.batch_size):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled("feature extraction")

            batch = photos[start : start + options.batch_size]
            end = start + len(batch)
            self._emit(
                state,
                GroupingStatus.EXTRACTING_FEATURES,
                round(start / total * EXTRACTION_SPAN),
                f"Extracting features from photos {start + 1}-{end}...",
                current_photo=start,
                current_photo_id=batch[0].photo_id,
            )

            features.extend(self._extractor.extract_batch(batch))
            self._memory.check()
            if pause > 0:
                self._sleep(pause)

        self._emit(
            state,
            GroupingStatus.EXTRACTING_FEATURES,
            EXTRACTION_SPAN,
            f"Extracted features from {total} photos.",
            current_photo=total,
        )
        return features

    def _emit(
        self,
        state: _RunState,
        status: GroupingStatus,
        percentage: int,
        message: str,
        *,
        current_photo: int | None = None,
        current_photo_id: str | None = None,
    ) -> None:
        """Emit one progress event; percentages never decrease within an attempt."""

        if state.last_percentage is not None:
            percentage = max(percentage, state.last_percentage)
        state.last_percentage = percentage

        self._registry.emit(
            GroupingProgress(
                session_id=state.session_id,
                current_step=status.value,
                current_photo=state.total_photos if current_photo is None else current_photo,
                total_photos=state.total_photos,
                percentage=percentage,
                status=status,
                message=message,
                current_photo_id=current_photo_id,
                attempt=state.attempt,
            )
        )


__all__ = ["GroupingOrchestrator"]
