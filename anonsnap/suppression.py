"""
Suppression of duplicate candidates.

Two stages turn the noisy multi-pass candidate list into one box per
face:

    A. non_max_suppression — greedy, score-ranked. Among near-identical
       boxes it keeps the single best one (highest score, then tightest).
    B. cluster — looser merge. Boxes that are clearly the same face but
       did not line up tightly enough for stage A are combined into their
       bounding envelope.

``suppress`` runs A then B and repeats until a pass removes nothing, so
its output is a fixed point of itself and no two surviving boxes
overlap by more than ``cluster_iou``.

All functions are pure and deterministic for a given candidate list and
configuration.
"""

import logging
import math
from typing import List, Sequence

from anonsnap.config import DetectionConfig
from anonsnap.detection import Candidate

logger = logging.getLogger(__name__)

# Scores closer than this are treated as equal.
_SCORE_EPS = 1e-4


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def intersection(a: Candidate, b: Candidate) -> float:
    """Area of the overlap between two boxes (0 when disjoint)."""
    iw = min(a.x2, b.x2) - max(a.x1, b.x1)
    ih = min(a.y2, b.y2) - max(a.y1, b.y1)
    if iw <= 0 or ih <= 0:
        return 0.0
    return iw * ih


def iou(a: Candidate, b: Candidate) -> float:
    """Intersection over union."""
    inter = intersection(a, b)
    union = a.area + b.area - inter
    return inter / union if union > 0 else 0.0


def containment(a: Candidate, b: Candidate) -> float:
    """Intersection over the smaller of the two areas."""
    return intersection(a, b) / min(a.area, b.area)


def center_distance_ratio(a: Candidate, b: Candidate) -> float:
    """Centre distance divided by the mean of each box's larger side."""
    (ax, ay), (bx, by) = a.center, b.center
    mean_dim = (max(a.width, a.height) + max(b.width, b.height)) / 2
    return math.hypot(ax - bx, ay - by) / mean_dim


def sizes_close(a: Candidate, b: Candidate, max_diff: float) -> bool:
    """True when both width and height differ by less than ``max_diff`` (relative)."""
    dw = abs(a.width - b.width) / max(a.width, b.width)
    dh = abs(a.height - b.height) / max(a.height, b.height)
    return dw < max_diff and dh < max_diff


def _ranking_key(c: Candidate):
    return (-c.score, c.area)


# ---------------------------------------------------------------------------
# Step A: greedy score-based NMS
# ---------------------------------------------------------------------------

def _is_duplicate(a: Candidate, b: Candidate, config: DetectionConfig) -> bool:
    if containment(a, b) > config.nms_containment:
        return True
    return (
        center_distance_ratio(a, b) < config.nms_center_dist_frac
        and sizes_close(a, b, config.nms_size_diff_frac)
    )


def _beats(candidate: Candidate, kept: Candidate) -> bool:
    if candidate.score - kept.score >= _SCORE_EPS:
        return True
    return abs(candidate.score - kept.score) < _SCORE_EPS and candidate.area < kept.area


def non_max_suppression(
    candidates: Sequence[Candidate], config: DetectionConfig
) -> List[Candidate]:
    """Keep the best box among each group of near-identical candidates.

    Candidates are visited by descending score, tighter boxes first on
    ties. A candidate is dropped when its IoU with any kept box exceeds
    ``nms_iou``. When it is a duplicate of a kept box (high containment,
    or close centres with similar sizes) it either replaces that box, if
    it scores higher or scores the same and is tighter, or is dropped.
    The first kept box that matches decides.
    """
    kept: List[Candidate] = []

    for cand in sorted(candidates, key=_ranking_key):
        accept = True
        for i, k in enumerate(kept):
            if iou(cand, k) > config.nms_iou:
                accept = False
                break
            if _is_duplicate(cand, k, config):
                if _beats(cand, k):
                    kept[i] = cand
                accept = False
                break
        if accept:
            kept.append(cand)

    return kept


# ---------------------------------------------------------------------------
# Step B: loose clustering merge
# ---------------------------------------------------------------------------

def _belongs_to(box: Candidate, cluster_box: Candidate, config: DetectionConfig) -> bool:
    if iou(box, cluster_box) > config.cluster_iou:
        return True
    return (
        center_distance_ratio(box, cluster_box) < config.cluster_center_frac
        and sizes_close(box, cluster_box, config.cluster_size_frac)
    )


def envelope(a: Candidate, b: Candidate) -> Candidate:
    """Smallest box covering both, with the higher score and joined sources."""
    return Candidate(
        x1=min(a.x1, b.x1),
        y1=min(a.y1, b.y1),
        x2=max(a.x2, b.x2),
        y2=max(a.y2, b.y2),
        score=max(a.score, b.score),
        source=f"{a.source}+{b.source}",
    )


def cluster(survivors: Sequence[Candidate], config: DetectionConfig) -> List[Candidate]:
    """Merge residual fragments into their bounding envelope.

    Each box joins the first existing cluster it matches (IoU above
    ``cluster_iou``, or close centres with similar sizes). The cluster
    becomes the envelope of both boxes with the higher score. Boxes
    matching no cluster start a new one. Order is preserved.
    """
    clusters: List[Candidate] = []

    for box in survivors:
        for i, c in enumerate(clusters):
            if _belongs_to(box, c, config):
                clusters[i] = envelope(c, box)
                break
        else:
            clusters.append(box)

    return clusters


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def suppress(candidates: Sequence[Candidate], config: DetectionConfig) -> List[Candidate]:
    """Run NMS then clustering until the result is stable.

    Returns:
        Surviving boxes ordered by descending score, tighter first on ties.
    """
    boxes = list(candidates)
    passes = 0

    while True:
        passes += 1
        survivors = non_max_suppression(boxes, config)
        merged = cluster(survivors, config)
        logger.debug(
            "Suppression pass %d: %d candidates -> %d after NMS -> %d clusters",
            passes, len(boxes), len(survivors), len(merged),
        )
        stable = len(merged) == len(boxes)
        boxes = merged
        if stable:
            break

    return sorted(boxes, key=_ranking_key)
