"""
Visualization for the face-finding pipeline.

Responsibility:
    Draw numbered face boxes onto a copy of an image for debugging, and
    cut small square thumbnails of individual faces. Pure rendering —
    no I/O beyond the optional preview window.

Non-goals:
    - No anonymization (pixelation, blurring) of face regions.
    - No detection or model logic.
"""

from typing import List

import cv2
import numpy as np

from anonsnap.config import VisualizationConfig
from anonsnap.detection import Face

# Hard-coded rendering constants (cosmetic internals, not user-facing)
_FONT = cv2.FONT_HERSHEY_SIMPLEX
_FONT_SCALE = 0.6
_FONT_THICKNESS = 1
_LABEL_OFFSET = (4, 18)

# Fraction of the face size added on each side of a thumbnail.
_THUMBNAIL_PADDING = 0.3


def draw_faces(
    image: np.ndarray,
    faces: List[Face],
    config: VisualizationConfig,
) -> np.ndarray:
    """Draw selected face boxes, numbered from 1, onto a copy of ``image``.

    Args:
        image: Input BGR image (not modified — a copy is returned).
        faces: Faces to render. Unselected faces are skipped.
        config: Visualization parameters (color, thickness, labels).
    """
    annotated = image.copy()

    for index, face in enumerate(faces, start=1):
        if not face.selected:
            continue

        box = face.bbox
        top_left = (int(round(box.x)), int(round(box.y)))
        bottom_right = (int(round(box.x + box.width)), int(round(box.y + box.height)))
        cv2.rectangle(
            annotated,
            top_left,
            bottom_right,
            color=config.box_color,
            thickness=config.thickness,
        )

        if config.show_index:
            cv2.putText(
                annotated,
                str(index),
                (top_left[0] + _LABEL_OFFSET[0], top_left[1] + _LABEL_OFFSET[1]),
                _FONT,
                _FONT_SCALE,
                config.box_color,
                _FONT_THICKNESS,
                cv2.LINE_AA,
            )

    return annotated


def face_thumbnail(image: np.ndarray, face: Face, size: int = 80) -> np.ndarray:
    """Return a ``size`` x ``size`` crop around a face.

    The crop is padded by 30% of the face size on every side; parts
    falling outside the image are filled with black.

    Raises:
        ValueError: If size is not positive or the face box is empty.
    """
    if size <= 0:
        raise ValueError(f"Thumbnail size must be positive, got {size}.")

    box = face.bbox
    if box.width <= 0 or box.height <= 0:
        raise ValueError(f"Face '{face.id}' has an empty bounding box.")

    pad_w = box.width * _THUMBNAIL_PADDING
    pad_h = box.height * _THUMBNAIL_PADDING
    x0 = int(round(box.x - pad_w))
    y0 = int(round(box.y - pad_h))
    x1 = max(x0 + 1, int(round(box.x + box.width + pad_w)))
    y1 = max(y0 + 1, int(round(box.y + box.height + pad_h)))

    h, w = image.shape[:2]
    crop = np.zeros((y1 - y0, x1 - x0) + image.shape[2:], dtype=image.dtype)
    sx0, sy0 = max(0, x0), max(0, y0)
    sx1, sy1 = min(w, x1), min(h, y1)
    if sx1 > sx0 and sy1 > sy0:
        crop[sy0 - y0:sy1 - y0, sx0 - x0:sx1 - x0] = image[sy0:sy1, sx0:sx1]

    return cv2.resize(crop, (size, size), interpolation=cv2.INTER_AREA)


def show_faces(
    image: np.ndarray,
    faces: List[Face],
    config: VisualizationConfig,
) -> int:
    """Show annotated image in a window and wait for a key press.

    Returns:
        The key code (int) pressed.
    """
    annotated = draw_faces(image, faces, config)
    cv2.imshow("AnonSnap Faces", annotated)
    return cv2.waitKey(0) & 0xFF
