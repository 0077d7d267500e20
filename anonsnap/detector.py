"""
FaceFinder — the single public API for face finding.

This module is the ONLY intended programmatic entry point for consumers
of the library. All other modules are internal.

Public contract:
    FaceFinder.find_faces(image: np.ndarray, config=None) -> list[Face]

Constraints:
    - Input must be a BGR numpy array (as returned by OpenCV).
    - Output is deterministic for a given image and configuration,
      apart from the random run token embedded in face ids.
    - Runs on one FaceFinder must be serialized by the caller.

Non-goals:
    - No file reading or I/O of any kind.
    - No visualization, anonymization, or output writing.
    - No tracking or temporal state.
"""

import logging
from typing import List, Optional

import numpy as np

from anonsnap.backend import ComputeBackend
from anonsnap.capabilities import Capabilities, detect_capabilities
from anonsnap.config import AppConfig, DetectionConfig, load_config, validate_detection
from anonsnap.detection import Face
from anonsnap.detectors import CascadeFaceDetector, SsdFaceDetector
from anonsnap.generator import CandidateGenerator
from anonsnap.lazy import LazyDetector
from anonsnap.model_loader import load_cascade, load_model
from anonsnap.postprocessor import finalize
from anonsnap.suppression import suppress

logger = logging.getLogger(__name__)


class FaceFinder:
    """Ensemble face finder over OpenCV detectors.

    Wires together the lazily-loaded detectors, the candidate generator,
    the suppression engine and the box post-processor.

    Usage:
        finder = FaceFinder()                          # Uses safe defaults
        finder = FaceFinder(config=my_config)          # Custom config
        faces = finder.find_faces(image)               # BGR numpy array
        more = finder.find_faces_aggressive(image)     # Relaxed knobs

    Detectors are loaded on the first run, not in the constructor.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        accurate: Optional[LazyDetector] = None,
        fast: Optional[LazyDetector] = None,
        backend: Optional[ComputeBackend] = None,
        capabilities: Optional[Capabilities] = None,
    ) -> None:
        """Prepare the pipeline.

        Args:
            config: Application configuration. If None, safe defaults
                    are used (no config file required).
            accurate: Override for the accurate detector handle.
            fast: Override for the fast detector handle.
            backend: Override for the inference backend.
            capabilities: Override for the device capabilities.

        Raises:
            ValueError: If configuration values are invalid.
        """
        if config is None:
            config = load_config()

        self._config = config
        self._backend = backend or ComputeBackend(config.device.backend)
        self._capabilities = capabilities or detect_capabilities(config.device.profile)

        if accurate is None:
            accurate = LazyDetector("accurate", self._load_accurate)
        if fast is None:
            fast = LazyDetector(
                "fast", lambda: CascadeFaceDetector(load_cascade(config.cascade), config.cascade)
            )

        self._generator = CandidateGenerator(
            accurate=accurate,
            fast=fast,
            backend=self._backend,
            capabilities=self._capabilities,
        )

        logger.info(
            "FaceFinder ready (backend=%s, max_detect_dim=%d, tiling=%s, augmentation=%s)",
            self._backend.name,
            self._capabilities.max_detect_dim,
            self._capabilities.tiling_enabled,
            self._capabilities.augmentation_enabled,
        )

    def _load_accurate(self) -> SsdFaceDetector:
        net = load_model(self._config.model, self._backend.name)
        detector = SsdFaceDetector(net, self._config.model)
        self._backend.attach(detector.apply_backend)
        return detector

    def find_faces(
        self, image: np.ndarray, config: Optional[DetectionConfig] = None
    ) -> List[Face]:
        """Find faces in a single BGR image.

        Args:
            image: A BGR image as a numpy array with shape (H, W, 3)
                   and dtype uint8.
            config: Detection knobs for this run. Defaults to the
                    detection section of the active configuration.

        Returns:
            Faces in cluster order, all selected.

        Raises:
            TypeError: If image is not a numpy ndarray.
            ValueError: If image has incorrect shape or is empty, or the
                        detection config is invalid.
            DetectorUnavailableError: If no detector can be loaded.
        """
        self._validate_frame(image)
        if config is None:
            config = self._config.detection
        else:
            validate_detection(config)

        candidates = self._generator.generate(image, config)
        clusters = suppress(candidates, config)

        h, w = image.shape[:2]
        faces = finalize(clusters, (w, h), config)

        logger.info(
            "Found %d faces from %d candidates in %dx%d image",
            len(faces), len(candidates), w, h,
        )
        return faces

    def find_faces_aggressive(self, image: np.ndarray) -> List[Face]:
        """Run with relaxed knobs to recover faces a normal run missed."""
        return self.find_faces(image, self._config.detection.aggressive())

    @property
    def config(self) -> AppConfig:
        """Return the active configuration (read-only)."""
        return self._config

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    @staticmethod
    def _validate_frame(frame: np.ndarray) -> None:
        """Validate that the input frame meets the API contract.

        Raises:
            TypeError: If frame is not a numpy ndarray.
            ValueError: If frame is empty or has wrong dimensions.
        """
        if not isinstance(frame, np.ndarray):
            raise TypeError(
                f"Expected image to be a numpy ndarray, "
                f"got {type(frame).__name__}. "
                f"Use cv2.imread() to obtain images."
            )

        if frame.size == 0:
            raise ValueError(
                "Image is empty (zero size). "
                "Ensure the input source is providing valid images."
            )

        if frame.ndim != 3:
            raise ValueError(
                f"Expected a 3-dimensional image (H, W, C), "
                f"got {frame.ndim} dimensions with shape {frame.shape}. "
                f"Grayscale images must be converted to BGR first."
            )

        if frame.shape[2] != 3:
            raise ValueError(
                f"Expected 3 channels (BGR), got {frame.shape[2]} channels. "
                f"Input must be a BGR image as returned by OpenCV."
            )
