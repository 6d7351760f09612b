"""Explicit description of the vision/image capabilities a grouping run needs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

import numpy as np
from PIL import Image
from PIL import features as pil_features

IMAGE_DECODING: Final[str] = "Image Decoder"
VISION_BACKEND: Final[str] = "Vision Backend"
PHOTO_CATALOG: Final[str] = "Photo Catalog"

REQUIRED_CAPABILITIES: Final[tuple[str, ...]] = (IMAGE_DECODING, VISION_BACKEND, PHOTO_CATALOG)


@dataclass(frozen=True)
class DependencyReport:
    """Result of a dependency check."""

    available: bool
    missing: tuple[str, ...] = ()


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Which capabilities the hosting process provides.

    The descriptor is handed to the orchestrator at construction time. Names
    missing from ``flags`` count as unavailable.
    """

    flags: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def all_available(cls) -> "CapabilityDescriptor":
        return cls(flags={name: True for name in REQUIRED_CAPABILITIES})

    @classmethod
    def with_unavailable(cls, *names: str) -> "CapabilityDescriptor":
        flags = {name: True for name in REQUIRED_CAPABILITIES}
        for name in names:
            flags[name] = False
        return cls(flags=flags)

    def is_available(self, name: str) -> bool:
        return bool(self.flags.get(name, False))

    def check(self, required: tuple[str, ...] = REQUIRED_CAPABILITIES) -> DependencyReport:
        missing = tuple(name for name in required if not self.is_available(name))
        return DependencyReport(available=not missing, missing=missing)


def probe_capabilities() -> CapabilityDescriptor:
    """Build a descriptor from what Pillow and numpy provide in this process.

    Used by the CLI; library callers should construct the descriptor they
    actually provide.
    """

    flags = {name: True for name in REQUIRED_CAPABILITIES}
    Image.init()
    flags[IMAGE_DECODING] = bool(pil_features.check_codec("jpg")) and bool(Image.registered_extensions())
    # Pixel math needs Pillow images to round-trip into numpy arrays.
    flags[VISION_BACKEND] = np.asarray(Image.new("RGB", (2, 2))).shape == (2, 2, 3)
    return CapabilityDescriptor(flags=flags)


__all__ = [
    "IMAGE_DECODING",
    "VISION_BACKEND",
    "PHOTO_CATALOG",
    "REQUIRED_CAPABILITIES",
    "DependencyReport",
    "CapabilityDescriptor",
    "probe_capabilities",
]
