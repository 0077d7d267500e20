"""
Candidate generation across detectors and image variants.

Responsibility:
    Run the fixed sequence of detection passes over the working image
    and its variants, map every raw box back to original-image
    coordinates, and drop undersized boxes before they become
    candidates.

Pass sequence (each either always runs or runs on a condition):
    1. accurate detector, working image
    2. fast detector, descending scale list
    3. fast detector, overlapping tiles         (large image, tiling allowed)
    4. both detectors, upscaled + contrast       (below target, augmentation allowed)
    5. both detectors, super-scaled + rotated    (still below target)
    6. accurate detector again                   (below fallback floor)
    7. CPU-backend retry                         (below retry floor, accelerated backend)

Passes 3-5 and 7 are best-effort: a failure is logged and the run
continues with the candidates collected so far. Any other failure
propagates and the run produces nothing.

Non-goals:
    - No suppression (see anonsnap.suppression).
    - No concurrency: detector calls are strictly sequential.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from anonsnap.backend import ComputeBackend
from anonsnap.capabilities import Capabilities
from anonsnap.config import DetectionConfig
from anonsnap.detection import Candidate, RawDetection
from anonsnap.detectors import FaceDetectorAdapter
from anonsnap.lazy import LazyDetector
from anonsnap import transforms
from anonsnap.transforms import Transform

logger = logging.getLogger(__name__)

# Smallest side of a multi-scale variant, in pixels.
_MIN_SCALED_SIDE = 40


class DetectorUnavailableError(RuntimeError):
    """Raised when neither detector can be initialized."""


class _CandidateSink:
    """Collects candidates in original-image coordinates.

    Mapped boxes are clipped to the original image before the size
    checks, so parts detected on black variant borders never survive.
    """

    def __init__(
        self, working: Transform, image_size: Tuple[int, int], min_size: float
    ) -> None:
        self._working = working
        self._image_w, self._image_h = image_size
        self._min_size = min_size
        self.candidates: List[Candidate] = []
        self.discarded = 0

    def __len__(self) -> int:
        return len(self.candidates)

    def add(self, raws: List[RawDetection], variant: Transform, source: str) -> int:
        """Map raw boxes from ``variant`` to original space and keep valid ones."""
        before = len(self.candidates)
        for raw in raws:
            x1, y1, x2, y2 = self._working.invert_box(
                *variant.invert_box(raw.x_min, raw.y_min, raw.x_max, raw.y_max)
            )
            x1, y1 = max(0.0, x1), max(0.0, y1)
            x2, y2 = min(float(self._image_w), x2), min(float(self._image_h), y2)
            w, h = x2 - x1, y2 - y1
            if w <= 0 or h <= 0 or w < self._min_size or h < self._min_size:
                self.discarded += 1
                continue
            self.candidates.append(Candidate(
                x1=x1, y1=y1, x2=x2, y2=y2,
                score=min(max(raw.score, 0.0), 1.0),
                source=source,
            ))
        added = len(self.candidates) - before
        logger.debug("%s: +%d candidates (total %d)", source, added, len(self.candidates))
        return added


class CandidateGenerator:
    """Drives the detector adapters over the image variants.

    Usage:
        generator = CandidateGenerator(accurate, fast, backend, capabilities)
        candidates = generator.generate(image, config)

    The generator holds no per-run state; ``generate`` may be called
    repeatedly, but not concurrently.
    """

    def __init__(
        self,
        accurate: LazyDetector,
        fast: LazyDetector,
        backend: ComputeBackend,
        capabilities: Capabilities,
    ) -> None:
        self._accurate = accurate
        self._fast = fast
        self._backend = backend
        self._capabilities = capabilities

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    def generate(self, image: np.ndarray, config: DetectionConfig) -> List[Candidate]:
        """Collect candidates for one image.

        Args:
            image: BGR source image (H, W, 3).
            config: Detection knobs for this run.

        Returns:
            Candidates in original-image coordinates, in collection order.

        Raises:
            DetectorUnavailableError: If neither detector can be loaded.
        """
        accurate = self._accurate.try_get()
        fast = self._fast.try_get()
        if accurate is None and fast is None:
            raise DetectorUnavailableError(
                "No face detector available: both the accurate and the fast "
                "detector failed to initialize. Check the model files and "
                "the OpenCV installation."
            )

        caps = self._capabilities
        max_dim = config.max_detect_dim or caps.max_detect_dim
        working, working_tf = transforms.downscale(image, max_dim)
        if working_tf.scale != 1.0:
            logger.debug(
                "Downscaled source for detection to %dx%d (scale %.3f)",
                working_tf.size[0], working_tf.size[1], working_tf.scale,
            )

        sink = _CandidateSink(working_tf, (image.shape[1], image.shape[0]), config.min_box_size)
        identity = Transform()

        # 1. Accurate detector on the working image
        if accurate is not None:
            sink.add(accurate.estimate(working), identity, "accurate")

        # 2. Fast detector, multi-scale
        if fast is not None:
            for scale in caps.scales:
                variant, tf = transforms.rescale(working, scale, min_side=_MIN_SCALED_SIDE)
                sink.add(fast.estimate(variant), tf, "fast")

        # 3. Fast detector over tiles
        h, w = working.shape[:2]
        if (
            fast is not None
            and config.enable_tiling
            and caps.tiling_enabled
            and (w > config.tile_size or h > config.tile_size)
        ):
            self._best_effort("tiling", self._tile_pass, fast, working, sink, config)

        # 4. Upscaled, contrast-enhanced pass
        if caps.augmentation_enabled and len(sink) < config.target_face_count:
            self._best_effort(
                "contrast", self._contrast_pass, accurate, fast, working, sink, config
            )

        # 5. Super-scaled rotation passes
        if caps.augmentation_enabled and len(sink) < config.target_face_count:
            self._best_effort(
                "rotation", self._rotation_pass, accurate, fast, working, sink, config
            )

        # 6. Accurate detector fallback
        if len(sink) < config.fallback_min_faces:
            if accurate is None:
                accurate = self._accurate.try_get()
            if accurate is not None:
                sink.add(accurate.estimate(working), identity, "accurate-fallback")

        # 7. CPU backend retry
        if len(sink) < config.cpu_retry_floor and self._backend.accelerated:
            self._cpu_retry(fast if fast is not None else accurate, working, sink)

        logger.info(
            "Collected %d candidates (%d discarded as undersized or out of frame)",
            len(sink), sink.discarded,
        )
        return sink.candidates

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    @staticmethod
    def _best_effort(label: str, run_pass, *args) -> None:
        try:
            run_pass(*args)
        except Exception:
            logger.warning("%s pass failed; continuing without it.", label.capitalize(), exc_info=True)

    @staticmethod
    def _tile_pass(
        fast: FaceDetectorAdapter,
        working: np.ndarray,
        sink: _CandidateSink,
        config: DetectionConfig,
    ) -> None:
        for variant, tf in transforms.tile(working, config.tile_size, config.tile_overlap):
            sink.add(fast.estimate(variant), tf, "fast-tile")

    @staticmethod
    def _contrast_pass(
        accurate: Optional[FaceDetectorAdapter],
        fast: Optional[FaceDetectorAdapter],
        working: np.ndarray,
        sink: _CandidateSink,
        config: DetectionConfig,
    ) -> None:
        variant, tf = transforms.upscale_and_enhance_contrast(
            working, config.contrast_upscale, config.contrast_factor
        )
        if accurate is not None:
            sink.add(accurate.estimate(variant), tf, "accurate-upscaled")
        if fast is not None:
            sink.add(fast.estimate(variant), tf, "fast-upscaled")

    @staticmethod
    def _rotation_pass(
        accurate: Optional[FaceDetectorAdapter],
        fast: Optional[FaceDetectorAdapter],
        working: np.ndarray,
        sink: _CandidateSink,
        config: DetectionConfig,
    ) -> None:
        for angle in config.rotation_angles:
            if len(sink) >= config.target_face_count:
                break
            variant, tf = transforms.rotate(working, angle, scale=config.rotation_scale)
            if accurate is not None:
                sink.add(accurate.estimate(variant), tf, "accurate-rot")
            if fast is not None:
                sink.add(fast.estimate(variant), tf, "fast-rot")

    def _cpu_retry(
        self,
        detector: FaceDetectorAdapter,
        working: np.ndarray,
        sink: _CandidateSink,
    ) -> None:
        original = self._backend.name
        logger.info("Only %d candidates on %s; retrying on CPU.", len(sink), original)
        try:
            self._backend.activate("cpu")
            sink.add(detector.estimate(working), Transform(), f"{detector.name}-cpu-retry")
        except Exception:
            logger.warning("CPU retry failed.", exc_info=True)
        finally:
            try:
                self._backend.activate(original)
            except Exception:
                logger.warning("Could not restore %s backend.", original, exc_info=True)
