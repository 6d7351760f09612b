"""Shared fixtures: synthetic photos, stub collaborators and orchestrator factories."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

import numpy as np
import pytest
from PIL import Image

from photo_grouping.capabilities import CapabilityDescriptor
from photo_grouping.catalog import InMemoryPhotoCatalog, PillowPixelDecoder
from photo_grouping.config import FeatureConfig, Settings
from photo_grouping.models import GroupingProgress, PhotoRecord
from photo_grouping.orchestrator import GroupingOrchestrator

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0)


def make_scene(width: int = 96, height: int = 64, seed: int = 0) -> Image.Image:
    """Deterministic RGB scene with colour blocks, a gradient and some texture."""

    rng = np.random.default_rng(seed)
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, : width // 3] = (200, 40, 40)
    pixels[:, width // 3 : 2 * width // 3] = (40, 180, 60)
    pixels[:, 2 * width // 3 :] = (30, 60, 220)
    pixels[..., 2] = np.clip(
        pixels[..., 2].astype(np.int32) + np.linspace(0, 30, width, dtype=np.int32)[None, :], 0, 255
    ).astype(np.uint8)
    noise = rng.integers(0, 20, size=(height, width, 1), dtype=np.int32)
    pixels = np.clip(pixels.astype(np.int32) + noise, 0, 255).astype(np.uint8)
    return Image.fromarray(pixels)


def make_photo(
    photo_id: str,
    seconds: float,
    image: Image.Image | None = None,
    **overrides: object,
) -> PhotoRecord:
    pixel_ref = image if image is not None else make_scene()
    fields: dict[str, object] = {
        "photo_id": photo_id,
        "pixel_ref": pixel_ref,
        "captured_at": BASE_TIME + timedelta(seconds=seconds),
        "width": pixel_ref.size[0],
        "height": pixel_ref.size[1],
        "file_size": 1024,
        "quality_score": 0.8,
    }
    fields.update(overrides)
    return PhotoRecord(**fields)  # type: ignore[arg-type]


class StubMemoryMonitor:
    """Memory monitor that records calls without touching the process."""

    def __init__(self) -> None:
        self.calls = 0

    def check(self) -> dict[str, float]:
        self.calls += 1
        return {"used_mb": 0.0, "system_percent": 0.0, "collected": 0.0}


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings() -> Settings:
    return Settings(features=FeatureConfig(max_workers=2))


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_orchestrator(settings: Settings, sleep: RecordingSleep) -> Callable[..., GroupingOrchestrator]:
    def _factory(
        photos: Sequence[PhotoRecord] | None = None,
        *,
        session_id: str = "session-1",
        catalog: object | None = None,
        capabilities: CapabilityDescriptor | None = None,
    ) -> GroupingOrchestrator:
        resolved_catalog = catalog or InMemoryPhotoCatalog({session_id: photos or []})
        return GroupingOrchestrator(
            catalog=resolved_catalog,  # type: ignore[arg-type]
            decoder=PillowPixelDecoder(),
            capabilities=capabilities or CapabilityDescriptor.all_available(),
            settings=settings,
            memory_monitor=StubMemoryMonitor(),  # type: ignore[arg-type]
            sleep=sleep,
        )

    return _factory


def collect_events(orchestrator: GroupingOrchestrator, session_id: str) -> list[GroupingProgress]:
    events: list[GroupingProgress] = []
    orchestrator.subscribe(session_id, events.append)
    return events
