"""Process memory check run between feature extraction batches."""

from __future__ import annotations

import gc

import psutil

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "memory"})

_BYTES_PER_MB = 1024 * 1024


class MemoryMonitor:
    """Check resident memory and hint a collection above a fixed threshold."""

    def __init__(self, threshold_mb: float = 500.0) -> None:
        if threshold_mb <= 0:
            raise ValueError(f"threshold_mb must be positive, got {threshold_mb}")
        self.threshold_mb = threshold_mb
        self._process = psutil.Process()

    def used_mb(self) -> float:
        return self._process.memory_info().rss / _BYTES_PER_MB

    def check(self) -> dict[str, float]:
        """Log current usage and run ``gc.collect()`` when over the threshold.

        Returns:
            ``used_mb`` before collection, ``system_percent`` and ``collected``
            (objects freed, 0 when no collection ran).
        """

        used = self.used_mb()
        system_percent = float(psutil.virtual_memory().percent)
        collected = 0

        LOGGER.debug("memory_usage", extra={"used_mb": round(used, 2), "system_percent": system_percent})

        if used > self.threshold_mb:
            LOGGER.warning(
                "memory_high_triggering_gc",
                extra={"used_mb": round(used, 2), "threshold_mb": self.threshold_mb},
            )
            collected = gc.collect()

        return {"used_mb": used, "system_percent": system_percent, "collected": float(collected)}


__all__ = ["MemoryMonitor"]
