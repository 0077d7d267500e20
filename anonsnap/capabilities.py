"""
Device capability descriptor.

Computed once at startup and injected into the candidate generator so
the pipeline never inspects the host on its own. A constrained device
gets a smaller working image, fewer and coarser scales, and no tiling or
augmentation passes.
"""

import logging
import os
from dataclasses import dataclass
from typing import Tuple

logger = logging.getLogger(__name__)

# Hosts at or below this much physical memory are treated as constrained.
_LOW_MEMORY_BYTES = 4 * 1024 ** 3

_STANDARD_SCALES = (1.0, 0.85, 0.7, 0.55, 0.45, 0.35, 0.28, 0.22)
_CONSTRAINED_SCALES = (1.0, 0.8, 0.6, 0.45)


@dataclass(frozen=True)
class Capabilities:
    """What the pipeline is allowed to spend on one run.

    Attributes:
        max_detect_dim: Longest side of the working image.
        tiling_enabled: Whether the tiled pass may run.
        augmentation_enabled: Whether the contrast and rotation passes may run.
        scales: Descending scale factors of the multi-scale pass.
    """

    max_detect_dim: int
    tiling_enabled: bool
    augmentation_enabled: bool
    scales: Tuple[float, ...]

    @classmethod
    def standard(cls) -> "Capabilities":
        return cls(
            max_detect_dim=1600,
            tiling_enabled=True,
            augmentation_enabled=True,
            scales=_STANDARD_SCALES,
        )

    @classmethod
    def constrained(cls) -> "Capabilities":
        return cls(
            max_detect_dim=1280,
            tiling_enabled=False,
            augmentation_enabled=False,
            scales=_CONSTRAINED_SCALES,
        )


def _physical_memory() -> int:
    """Return total physical memory in bytes, or 0 if unknown."""
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return 0


def detect_capabilities(profile: str = "auto") -> Capabilities:
    """Resolve a device profile name into a Capabilities descriptor.

    Args:
        profile: 'standard', 'constrained', or 'auto' (constrained when
                 physical memory is known and at most 4 GiB).

    Raises:
        ValueError: If the profile name is unknown.
    """
    if profile == "standard":
        return Capabilities.standard()
    if profile == "constrained":
        return Capabilities.constrained()
    if profile != "auto":
        raise ValueError(
            f"Unknown device profile: '{profile}'. "
            f"Use 'auto', 'standard' or 'constrained'."
        )

    memory = _physical_memory()
    if 0 < memory <= _LOW_MEMORY_BYTES:
        logger.info(
            "Low-memory host detected (%.1f GiB); using constrained profile.",
            memory / 1024 ** 3,
        )
        return Capabilities.constrained()
    return Capabilities.standard()
