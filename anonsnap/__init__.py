"""
AnonSnap face finding — ensemble face detection for image anonymization.

Public API:
    - FaceFinder: The single entry point for face finding.
    - Face, BoundingBox: Records returned by FaceFinder.find_faces().
    - DetectionConfig, DEFAULT_DETECTION_CONFIG: Per-run tuning knobs.
    - DetectorUnavailableError: Raised when no detector can be loaded.

All other modules in this package are internal implementation details
and should not be imported directly by consumers.

Usage:
    from anonsnap import FaceFinder

    finder = FaceFinder()
    faces = finder.find_faces(image)
"""

from anonsnap.config import DEFAULT_DETECTION_CONFIG, DetectionConfig
from anonsnap.detection import BoundingBox, Face
from anonsnap.detector import FaceFinder
from anonsnap.generator import DetectorUnavailableError

__all__ = [
    "FaceFinder",
    "Face",
    "BoundingBox",
    "DetectionConfig",
    "DEFAULT_DETECTION_CONFIG",
    "DetectorUnavailableError",
]
