"""
Postprocessing for the face-finding pipeline.

Responsibility:
    Turn the suppressed clusters into Face records: expand each box
    outward, clamp it to the image, merge boxes that the expansion pushed
    into overlap, and assign run-unique identifiers.

Non-goals:
    - No drawing, saving, or display logic.
    - No candidate-level suppression or detection.

Clamping:
    The top-left corner is always clamped at the image origin. With
    ``clamp_to_image`` (the default) the far edges are clamped to the
    image as well. Without it the legacy behaviour is kept: width and
    height are always ``(1 + 2 * expansion)`` times the cluster size,
    even when the box was shifted by the origin clamp or runs past the
    right or bottom edge.
"""

import logging
import uuid
from typing import List, Optional, Sequence, Tuple

from anonsnap.config import DetectionConfig
from anonsnap.detection import BoundingBox, Candidate, Face
from anonsnap.suppression import envelope, iou

logger = logging.getLogger(__name__)


def expand_box(
    box: Candidate,
    image_size: Tuple[int, int],
    expansion: float,
    clamp_to_image: bool = True,
) -> BoundingBox:
    """Grow a box by ``expansion`` times its size on each side.

    Args:
        box: Cluster box in original-image coordinates.
        image_size: (width, height) of the original image.
        expansion: Fraction of the box dimension added per side.
        clamp_to_image: Also clamp the right and bottom edges.
    """
    dx = box.width * expansion
    dy = box.height * expansion
    x = max(0.0, box.x1 - dx)
    y = max(0.0, box.y1 - dy)

    if not clamp_to_image:
        return BoundingBox(
            x=x,
            y=y,
            width=box.width + 2 * dx,
            height=box.height + 2 * dy,
        )

    img_w, img_h = image_size
    x2 = min(float(img_w), box.x2 + dx)
    y2 = min(float(img_h), box.y2 + dy)
    return BoundingBox(x=x, y=y, width=max(0.0, x2 - x), height=max(0.0, y2 - y))


def _as_candidate(bbox: BoundingBox, source: Candidate) -> Candidate:
    return Candidate(
        x1=bbox.x,
        y1=bbox.y,
        x2=bbox.x + bbox.width,
        y2=bbox.y + bbox.height,
        score=source.score,
        source=source.source,
    )


def _first_overlap(boxes: Sequence[Candidate], max_iou: float) -> Optional[Tuple[int, int]]:
    for i, a in enumerate(boxes):
        for j in range(i + 1, len(boxes)):
            if iou(a, boxes[j]) > max_iou:
                return i, j
    return None


def merge_overlapping(boxes: Sequence[Candidate], max_iou: float) -> List[Candidate]:
    """Merge expanded boxes until no pair overlaps by more than ``max_iou``.

    Expansion can push two neighbouring clusters over the clustering
    threshold. Such a pair is replaced, at the position of the earlier
    box, by the envelope of both.
    """
    merged = list(boxes)
    pair = _first_overlap(merged, max_iou)
    while pair is not None:
        i, j = pair
        merged[i] = envelope(merged[i], merged.pop(j))
        pair = _first_overlap(merged, max_iou)
    return merged


def finalize(
    clusters: Sequence[Candidate],
    image_size: Tuple[int, int],
    config: DetectionConfig,
    run_id: Optional[str] = None,
) -> List[Face]:
    """Build the final face list in cluster order.

    Args:
        clusters: Output of the suppression engine.
        image_size: (width, height) of the original image.
        config: Detection knobs (expansion ratio, clamping, cluster_iou).
        run_id: Token making ids unique across runs. A random one is
                generated when omitted.

    Returns:
        One selected Face per expanded cluster, ids ``face-<index>-<run_id>``.
        Boxes left empty by clamping are dropped, and no two faces
        overlap by more than ``config.cluster_iou``.
    """
    if run_id is None:
        run_id = uuid.uuid4().hex[:12]

    expanded = []
    for box in clusters:
        bbox = expand_box(box, image_size, config.box_expansion, config.clamp_to_image)
        if bbox.width <= 0 or bbox.height <= 0:
            logger.debug("Dropping cluster outside the image: %s", box)
            continue
        expanded.append(_as_candidate(bbox, box))

    merged = merge_overlapping(expanded, config.cluster_iou)
    if len(merged) < len(expanded):
        logger.debug("Merged %d expanded boxes into neighbours", len(expanded) - len(merged))

    return [
        Face(
            id=f"face-{index}-{run_id}",
            bbox=BoundingBox(x=box.x1, y=box.y1, width=box.width, height=box.height),
        )
        for index, box in enumerate(merged)
    ]
