"""
Detector adapters.

Responsibility:
    Wrap an inference capability behind one small interface:

        estimate(image: np.ndarray) -> list[RawDetection]

    with boxes in the pixel coordinates of ``image``. Two adapters ship
    with the package:

        SsdFaceDetector      "accurate" — ResNet-10 SSD via OpenCV DNN.
        CascadeFaceDetector  "fast"     — Haar cascade bundled with OpenCV.

Non-goals:
    - No coordinate mapping back to the original image.
    - No suppression across passes.
    - No lazy loading (see anonsnap.lazy).

Hard-coded:
    - SSD output tensor layout: [1, 1, N, 7] where each row is
      [batch_id, class_id, confidence, x1, y1, x2, y2] with
      coordinates normalized to [0, 1].
"""

import logging
import math
from typing import List, Protocol

import cv2
import numpy as np

from anonsnap.backend import configure_net
from anonsnap.config import CascadeConfig, ModelConfig
from anonsnap.detection import RawDetection
from anonsnap.preprocessor import to_blob, to_gray

logger = logging.getLogger(__name__)


class FaceDetectorAdapter(Protocol):
    """Interface every detector adapter implements."""

    @property
    def name(self) -> str:
        """Return a short identifier used in logs."""
        ...

    def estimate(self, image: np.ndarray) -> List[RawDetection]:
        """Detect faces in a BGR image.

        Returns:
            Raw boxes in the pixel coordinates of ``image``.
        """
        ...

    def apply_backend(self, backend: str) -> None:
        """Re-target any inference state at the named backend."""
        ...


def parse_ssd_output(
    network_output: np.ndarray,
    frame_width: int,
    frame_height: int,
    confidence_threshold: float,
) -> List[RawDetection]:
    """Parse raw SSD output into raw detections.

    Coordinates are un-normalized to absolute float pixels and are not
    clamped: boxes may extend past the frame edges.

    Args:
        network_output: Raw output from net.forward(), expected shape
                        (1, 1, N, 7).
        frame_width: Frame width in pixels (for coordinate mapping).
        frame_height: Frame height in pixels (for coordinate mapping).
        confidence_threshold: Minimum confidence to accept a detection.

    Returns:
        List of RawDetection objects, sorted by score (descending).
    """
    detections: List[RawDetection] = []

    # Each detection: [batch_id, class_id, confidence, x1, y1, x2, y2]
    raw = network_output[0, 0]  # Shape: (N, 7)

    for i in range(raw.shape[0]):
        confidence = float(raw[i, 2])

        if confidence < confidence_threshold:
            continue

        x1 = float(raw[i, 3]) * frame_width
        y1 = float(raw[i, 4]) * frame_height
        x2 = float(raw[i, 5]) * frame_width
        y2 = float(raw[i, 6]) * frame_height

        # Skip degenerate boxes
        if x2 <= x1 or y2 <= y1:
            continue

        detections.append(RawDetection(
            x_min=x1, y_min=y1, x_max=x2, y_max=y2,
            score=min(confidence, 1.0),
        ))

    detections.sort(key=lambda d: d.score, reverse=True)
    return detections


class SsdFaceDetector:
    """Accurate detector: SSD-ResNet10 through OpenCV DNN."""

    name = "accurate"

    def __init__(self, net: cv2.dnn.Net, config: ModelConfig) -> None:
        self._net = net
        self._config = config

    def estimate(self, image: np.ndarray) -> List[RawDetection]:
        blob = to_blob(image, self._config)
        self._net.setInput(blob)
        output = self._net.forward()

        h, w = image.shape[:2]
        return parse_ssd_output(
            network_output=output,
            frame_width=w,
            frame_height=h,
            confidence_threshold=self._config.confidence_threshold,
        )

    def apply_backend(self, backend: str) -> None:
        configure_net(self._net, backend)


def level_weight_to_score(weight: float) -> float:
    """Squash a cascade level weight into a [0, 1] score."""
    return 1.0 / (1.0 + math.exp(-weight))


class CascadeFaceDetector:
    """Fast detector: Haar cascade classifier.

    The cascade has no calibrated confidence; the final-stage level
    weight reported by ``detectMultiScale3`` is mapped through a
    logistic so that stronger windows score higher.
    """

    name = "fast"

    def __init__(self, classifier: cv2.CascadeClassifier, config: CascadeConfig) -> None:
        self._classifier = classifier
        self._config = config

    def estimate(self, image: np.ndarray) -> List[RawDetection]:
        gray = to_gray(image)
        rects, _, weights = self._classifier.detectMultiScale3(
            gray,
            scaleFactor=self._config.scale_factor,
            minNeighbors=self._config.min_neighbors,
            outputRejectLevels=True,
        )

        weights = np.asarray(weights, dtype=np.float64).ravel()
        detections = []
        for (x, y, w, h), weight in zip(rects, weights):
            detections.append(RawDetection(
                x_min=float(x),
                y_min=float(y),
                x_max=float(x + w),
                y_max=float(y + h),
                score=level_weight_to_score(float(weight)),
            ))
        return detections

    def apply_backend(self, backend: str) -> None:
        # Cascades follow the process-wide OpenCL switch.
        pass
