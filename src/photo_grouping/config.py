"""Configuration loader and typed settings for the photo grouping engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from photo_grouping.errors import ValidationError

WEIGHT_SUM_TOLERANCE = 0.01
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 50


@dataclass(frozen=True)
class SimilarityWeights:
    """Relative weights of the temporal, visual and metadata similarity terms."""

    temporal: float = 0.5
    visual: float = 0.35
    metadata: float = 0.15

    @property
    def total(self) -> float:
        return self.temporal + self.visual + self.metadata

    def validate(self) -> None:
        if abs(self.total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValidationError(f"Sum of similarity weights must equal 1.0 (got {self.total:.3f})")


@dataclass(frozen=True)
class GroupingOptions:
    """Per-run clustering options.

    Defaults favour burst sequences: a fairly permissive threshold and a
    temporal weight that dominates the visual and metadata terms.
    """

    similarity_threshold: float = 0.55
    max_group_size: int = 15
    min_group_size: int = 2
    weights: SimilarityWeights = field(default_factory=SimilarityWeights)
    batch_size: int = 10

    def merged(self, **overrides: Any) -> "GroupingOptions":
        """Return a copy with non-``None`` overrides applied.

        Weight overrides may be given as ``temporal_weight``, ``visual_weight``
        and ``metadata_weight``.
        """

        weight_keys = {"temporal_weight": "temporal", "visual_weight": "visual", "metadata_weight": "metadata"}
        weight_changes = {
            weight_keys[key]: float(value)
            for key, value in overrides.items()
            if key in weight_keys and value is not None
        }
        option_changes = {
            key: value for key, value in overrides.items() if key not in weight_keys and value is not None
        }
        if weight_changes:
            option_changes["weights"] = replace(self.weights, **weight_changes)
        return replace(self, **option_changes)

    def validate(self) -> None:
        """Raise :class:`ValidationError` if the options cannot drive a run."""

        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValidationError("Similarity threshold must be between 0 and 1")
        if self.min_group_size < 2:
            raise ValidationError("Minimum group size must be at least 2")
        if self.max_group_size < self.min_group_size:
            raise ValidationError("Maximum group size must be greater than or equal to minimum group size")
        if not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE:
            raise ValidationError(f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}")
        self.weights.validate()


@dataclass
class FeatureConfig:
    """Knobs for per-photo feature extraction."""

    analysis_max_side: int = 512
    max_workers: int = 4
    complexity_stride: int = 5
    default_width: int = 1920
    default_height: int = 1080


@dataclass
class MemoryConfig:
    """Post-batch memory check configuration."""

    threshold_mb: float = 500.0
    batch_pause_seconds: float = 0.0


@dataclass
class RetryPolicy:
    """Adaptive retry policy for whole grouping runs."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    threshold_step: float = 0.1
    threshold_floor: float = 0.0
    min_batch_size: int = 3

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based): 1s, 2s, 4s, ... capped."""

        return min(self.base_delay_seconds * (2**retry_index), self.max_delay_seconds)

    def relax(self, options: GroupingOptions) -> GroupingOptions:
        """Return more conservative options for the next attempt."""

        return replace(
            options,
            batch_size=max(options.batch_size // 2, self.min_batch_size),
            similarity_threshold=max(options.similarity_threshold - self.threshold_step, self.threshold_floor),
        )


@dataclass
class Settings:
    """Top-level engine settings."""

    grouping: GroupingOptions = field(default_factory=GroupingOptions)
    features: FeatureConfig = field(default_factory=FeatureConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover
        return module_path.parent


def _build_default_settings_paths() -> list[Path]:
    """Return candidate settings paths ordered by preference."""

    cwd_candidate = (Path.cwd() / "config" / "settings.yaml").resolve()
    repo_candidate = (_project_root() / "config" / "settings.yaml").resolve()
    if cwd_candidate == repo_candidate:
        return [cwd_candidate]
    return [cwd_candidate, repo_candidate]


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Determine which settings file to load, honoring overrides."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv("PHOTO_GROUPING_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()

    candidates = _build_default_settings_paths()
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _apply_section(target: Any, raw: dict[str, Any]) -> None:
    """Copy recognised, correctly typed keys from ``raw`` onto a mutable dataclass."""

    for item in fields(target):
        if item.name not in raw:
            continue
        value = raw[item.name]
        current = getattr(target, item.name)
        if isinstance(current, bool):
            if isinstance(value, bool):
                setattr(target, item.name, value)
        elif isinstance(current, int):
            if isinstance(value, int) and not isinstance(value, bool):
                setattr(target, item.name, value)
        elif isinstance(current, float):
            if _is_number(value):
                setattr(target, item.name, float(value))


def _parse_grouping(raw: dict[str, Any], defaults: GroupingOptions) -> GroupingOptions:
    changes: dict[str, Any] = {}
    if _is_number(raw.get("similarity_threshold")):
        changes["similarity_threshold"] = float(raw["similarity_threshold"])
    for key in ("max_group_size", "min_group_size", "batch_size"):
        value = raw.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            changes[key] = value

    weights_raw = _as_dict(raw.get("weights"))
    weight_changes = {
        key: float(weights_raw[key]) for key in ("temporal", "visual", "metadata") if _is_number(weights_raw.get(key))
    }
    if weight_changes:
        changes["weights"] = replace(defaults.weights, **weight_changes)

    return replace(defaults, **changes)


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load engine settings from a YAML file, falling back to defaults.

    Missing files, non-mapping documents and wrongly typed keys are ignored so
    a partially written settings file never prevents the engine from starting.
    Option validation happens when a run starts, not here.
    """

    path = _resolve_settings_path(settings_path)
    settings = Settings()

    if not path.exists() or not path.is_file():
        return settings

    with path.open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}

    if not isinstance(raw, dict):
        return settings

    settings.grouping = _parse_grouping(_as_dict(raw.get("grouping")), settings.grouping)
    _apply_section(settings.features, _as_dict(raw.get("features")))
    _apply_section(settings.memory, _as_dict(raw.get("memory")))
    _apply_section(settings.retry, _as_dict(raw.get("retry")))

    return settings


__all__ = [
    "WEIGHT_SUM_TOLERANCE",
    "SimilarityWeights",
    "GroupingOptions",
    "FeatureConfig",
    "MemoryConfig",
    "RetryPolicy",
    "Settings",
    "load_settings",
]
