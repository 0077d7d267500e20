"""
Tests for the suppression engine.
"""

import itertools

import numpy as np
import pytest

from anonsnap.config import DEFAULT_DETECTION_CONFIG as CFG, DetectionConfig
from anonsnap.detection import Candidate
from anonsnap.suppression import (
    center_distance_ratio,
    cluster,
    containment,
    iou,
    non_max_suppression,
    sizes_close,
    suppress,
)


def _cand(x1, y1, x2, y2, score=0.9, source="test"):
    return Candidate(x1=x1, y1=y1, x2=x2, y2=y2, score=score, source=source)


def _coords(c):
    return (c.x1, c.y1, c.x2, c.y2)


def _noisy_candidates(seed=7, faces=6, per_face=5):
    """Several jittered detections around a handful of well-separated faces."""
    rng = np.random.RandomState(seed)
    out = []
    for i in range(faces):
        cx, cy, size = 120 + 250 * i, 150 + 40 * (i % 2), 60 + 10 * i
        for _ in range(per_face):
            jx, jy = rng.uniform(-6, 6, size=2)
            js = rng.uniform(0.85, 1.15)
            half = size * js / 2
            out.append(_cand(
                cx + jx - half, cy + jy - half, cx + jx + half, cy + jy + half,
                score=float(rng.uniform(0.6, 0.99)),
            ))
    return out


def test_geometry_helpers():
    """Test IoU, containment, centre distance and size similarity."""
    a = _cand(0, 0, 100, 100)
    b = _cand(50, 0, 150, 100)
    assert iou(a, b) == pytest.approx(5000 / 15000)
    assert containment(a, b) == pytest.approx(0.5)
    assert center_distance_ratio(a, b) == pytest.approx(0.5)
    assert sizes_close(a, b, 0.01)

    inner = _cand(10, 10, 30, 30)
    assert containment(a, inner) == pytest.approx(1.0)
    assert not sizes_close(a, inner, 0.5)

    far = _cand(500, 500, 550, 550)
    assert iou(a, far) == 0.0
    assert containment(a, far) == 0.0


def test_collapse_near_identical_boxes():
    """Two heavily overlapping boxes collapse into one."""
    a = _cand(0, 0, 100, 100, score=0.8)
    b = _cand(5, 5, 105, 105, score=0.8)

    result = suppress([a, b], CFG)

    assert len(result) == 1
    # Equal scores and areas: the first in sorted order is kept
    assert _coords(result[0]) == _coords(a)


def test_no_false_merge_of_distant_boxes():
    """Boxes far apart both survive untouched."""
    a = _cand(0, 0, 50, 50, score=0.9)
    b = _cand(500, 500, 550, 550, score=0.6)

    result = suppress([b, a], CFG)

    assert [_coords(c) for c in result] == [_coords(a), _coords(b)]


def test_higher_scoring_tighter_box_wins():
    """With high containment, the higher-scoring smaller box survives."""
    big = _cand(0, 0, 100, 100, score=0.95)
    small = _cand(10, 10, 90, 90, score=0.99)

    result = suppress([big, small], CFG)

    assert len(result) == 1
    assert _coords(result[0]) == _coords(small)
    assert result[0].score == pytest.approx(0.99)


def test_duplicate_with_equal_score_prefers_tighter_box():
    """A contained duplicate with the same score (within tolerance) replaces a looser box."""
    loose = _cand(0, 0, 100, 100, score=0.90005)
    tight = _cand(0, 0, 60, 60, score=0.9)
    assert iou(loose, tight) < CFG.nms_iou  # only containment fires

    kept = non_max_suppression([loose, tight], CFG)

    assert len(kept) == 1
    assert _coords(kept[0]) == _coords(tight)


def test_duplicate_with_lower_score_is_rejected():
    """A contained duplicate with a clearly lower score is dropped."""
    strong = _cand(0, 0, 100, 100, score=0.95)
    weak = _cand(0, 0, 60, 60, score=0.7)

    kept = non_max_suppression([weak, strong], CFG)

    assert [_coords(c) for c in kept] == [_coords(strong)]


def test_near_center_similar_size_is_duplicate():
    """Close centres with similar sizes count as duplicates below the IoU threshold."""
    cfg = DetectionConfig(nms_iou=0.99, nms_containment=0.99)
    a = _cand(0, 0, 100, 100, score=0.9)
    b = _cand(8, 0, 108, 100, score=0.8)

    assert len(non_max_suppression([a, b], cfg)) == 1


def test_cluster_merges_fragments_into_envelope():
    """Boxes that slip through NMS but overlap loosely are merged."""
    a = _cand(0, 0, 100, 100, score=0.9, source="accurate")
    b = _cand(30, 0, 130, 100, score=0.7, source="fast")

    survivors = non_max_suppression([a, b], CFG)
    assert len(survivors) == 2

    merged = cluster(survivors, CFG)
    assert len(merged) == 1
    assert _coords(merged[0]) == (0, 0, 130, 100)
    assert merged[0].score == pytest.approx(0.9)
    assert merged[0].source == "accurate+fast"


def test_cluster_keeps_separate_boxes_in_order():
    """Unrelated boxes start their own clusters, order preserved."""
    boxes = [_cand(0, 0, 40, 40), _cand(200, 0, 240, 40), _cand(0, 200, 40, 240)]
    assert cluster(boxes, CFG) == boxes


def test_suppress_is_deterministic():
    """Identical input always gives identical output."""
    candidates = _noisy_candidates()
    first = suppress(candidates, CFG)
    second = suppress(list(candidates), CFG)
    assert first == second


def test_suppress_output_is_fixed_point():
    """Re-running suppression on its own output changes nothing."""
    for seed in range(5):
        once = suppress(_noisy_candidates(seed=seed), CFG)
        twice = suppress(once, CFG)
        assert twice == once


def test_no_pair_exceeds_cluster_iou():
    """No two surviving boxes overlap more than the clustering threshold."""
    for seed in range(5):
        result = suppress(_noisy_candidates(seed=seed, per_face=8), CFG)
        for a, b in itertools.combinations(result, 2):
            assert iou(a, b) <= CFG.cluster_iou


def test_jittered_detections_resolve_to_one_box_per_face():
    """Each group of jittered detections collapses to a single box."""
    result = suppress(_noisy_candidates(faces=6, per_face=5), CFG)
    assert len(result) == 6


def test_suppress_empty():
    """Test that an empty candidate list yields an empty result."""
    assert suppress([], CFG) == []
