"""
Image transforms for the detection passes.

Responsibility:
    Produce scaled, tiled, rotated, and contrast-enhanced variants of a
    BGR frame. Every operation returns the variant together with a
    :class:`Transform` that maps a box detected on the variant back to
    the coordinates of the image the variant was made from.

Non-goals:
    - No detection or suppression logic.
    - No perspective or non-uniform warps: every transform is a uniform
      scale, a rotation about the centre, or a translation.

Conventions:
    - Rotation angles are in degrees, positive meaning clockwise as seen
      on screen (y axis pointing down).
    - Inverse mapping uses the nominal scale factor, not the rounded
      pixel size of the variant.
"""

import math
from dataclasses import dataclass
from typing import Iterator, Tuple

import cv2
import numpy as np


@dataclass(frozen=True)
class Transform:
    """Describes how a variant was derived from its source image.

    Forward mapping of a source point ``p``:

        q = R(angle) · (p · scale − center) + center − offset

    Attributes:
        scale: Uniform scale factor applied first.
        angle: Rotation in degrees about ``center`` (scaled space).
        center: Rotation centre in scaled coordinates.
        offset: Top-left of the tile in scaled coordinates.
        size: (width, height) of the variant in pixels.
    """

    scale: float = 1.0
    angle: float = 0.0
    center: Tuple[float, float] = (0.0, 0.0)
    offset: Tuple[int, int] = (0, 0)
    size: Tuple[int, int] = (0, 0)

    def invert_point(self, x: float, y: float) -> Tuple[float, float]:
        """Map a point on the variant back to source coordinates."""
        x += self.offset[0]
        y += self.offset[1]
        if self.angle:
            x, y = self._unrotate(x, y)
        return x / self.scale, y / self.scale

    def invert_box(
        self, x1: float, y1: float, x2: float, y2: float
    ) -> Tuple[float, float, float, float]:
        """Map a box on the variant back to source coordinates.

        Under rotation only the box centre is rotated back; the detected
        width and height are kept, since the detector reports an
        axis-aligned box in the rotated frame.
        """
        x1 += self.offset[0]
        y1 += self.offset[1]
        x2 += self.offset[0]
        y2 += self.offset[1]

        if self.angle:
            half_w = (x2 - x1) / 2
            half_h = (y2 - y1) / 2
            cx, cy = self._unrotate(x1 + half_w, y1 + half_h)
            x1, y1, x2, y2 = cx - half_w, cy - half_h, cx + half_w, cy + half_h

        s = self.scale
        return x1 / s, y1 / s, x2 / s, y2 / s

    def _unrotate(self, x: float, y: float) -> Tuple[float, float]:
        rad = math.radians(-self.angle)
        cos, sin = math.cos(rad), math.sin(rad)
        dx = x - self.center[0]
        dy = y - self.center[1]
        return (
            dx * cos - dy * sin + self.center[0],
            dx * sin + dy * cos + self.center[1],
        )


def _size_of(image: np.ndarray) -> Tuple[int, int]:
    h, w = image.shape[:2]
    return w, h


def rescale(
    image: np.ndarray,
    factor: float,
    min_side: int = 1,
    interpolation: int = cv2.INTER_LINEAR,
) -> Tuple[np.ndarray, Transform]:
    """Resize by a uniform factor.

    Each output side is ``round(side * factor)`` but never smaller than
    ``min_side``. A factor of 1 returns the input unchanged.
    """
    if factor <= 0:
        raise ValueError(f"Scale factor must be positive, got {factor}.")

    w, h = _size_of(image)
    if factor == 1.0:
        return image, Transform(size=(w, h))

    new_w = max(min_side, int(round(w * factor)))
    new_h = max(min_side, int(round(h * factor)))
    resized = cv2.resize(image, (new_w, new_h), interpolation=interpolation)
    return resized, Transform(scale=factor, size=(new_w, new_h))


def downscale(image: np.ndarray, max_dim: int) -> Tuple[np.ndarray, Transform]:
    """Shrink so the longer side equals ``max_dim``; never enlarges."""
    w, h = _size_of(image)
    longest = max(w, h)
    if longest <= max_dim:
        return image, Transform(size=(w, h))
    return rescale(image, max_dim / longest, interpolation=cv2.INTER_AREA)


def tile(
    image: np.ndarray, tile_size: int, overlap_ratio: float
) -> Iterator[Tuple[np.ndarray, Transform]]:
    """Yield overlapping square tiles, clipped at the right and bottom edges.

    Tiles start every ``round(tile_size * (1 - overlap_ratio))`` pixels on
    both axes. Tiles are views into ``image``; do not write into them.
    """
    if tile_size <= 0:
        raise ValueError(f"Tile size must be positive, got {tile_size}.")

    w, h = _size_of(image)
    step = max(1, int(round(tile_size * (1 - overlap_ratio))))

    for y in range(0, h, step):
        for x in range(0, w, step):
            tw = min(tile_size, w - x)
            th = min(tile_size, h - y)
            yield image[y:y + th, x:x + tw], Transform(offset=(x, y), size=(tw, th))


def enhance_contrast(image: np.ndarray, factor: float) -> np.ndarray:
    """Linear contrast stretch about mid-grey, saturating at [0, 255]."""
    intercept = 128.0 * (1.0 - factor)
    stretched = image.astype(np.float32) * factor + intercept
    return np.clip(np.rint(stretched), 0, 255).astype(np.uint8)


def upscale_and_enhance_contrast(
    image: np.ndarray, factor: float, contrast: float = 1.25
) -> Tuple[np.ndarray, Transform]:
    """Enlarge by ``factor`` and apply :func:`enhance_contrast`."""
    upscaled, transform = rescale(image, factor)
    return enhance_contrast(upscaled, contrast), transform


def rotate(
    image: np.ndarray, angle_degrees: float, scale: float = 1.0
) -> Tuple[np.ndarray, Transform]:
    """Optionally rescale, then rotate about the image centre.

    The canvas keeps the (scaled) image size, so corners rotated out of
    frame are lost and uncovered areas are black.
    """
    base, scaled = rescale(image, scale)
    w, h = _size_of(base)
    center = (w / 2.0, h / 2.0)

    # OpenCV's positive angle is counter-clockwise on screen.
    matrix = cv2.getRotationMatrix2D(center, -angle_degrees, 1.0)
    rotated = cv2.warpAffine(base, matrix, (w, h), flags=cv2.INTER_LINEAR)

    return rotated, Transform(
        scale=scaled.scale,
        angle=angle_degrees,
        center=center,
        size=(w, h),
    )
