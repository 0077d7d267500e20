"""
Tests for the postprocessing module.
"""

import itertools

import numpy as np
import pytest

from anonsnap.config import DEFAULT_DETECTION_CONFIG, DetectionConfig
from anonsnap.detection import Candidate
from anonsnap.postprocessor import expand_box, finalize, merge_overlapping
from anonsnap.suppression import iou, suppress


def _bbox(b):
    return (b.x, b.y, b.width, b.height)


def test_expand_box_inside_image():
    """Test symmetric outward expansion."""
    box = Candidate(x1=10, y1=20, x2=110, y2=220, score=0.9)
    out = expand_box(box, (1000, 1000), 0.05)
    assert _bbox(out) == pytest.approx((5, 10, 110, 220))


def test_expand_box_clamps_to_image():
    """Test clamping at the origin and at the far edges."""
    box = Candidate(x1=0, y1=0, x2=100, y2=100, score=0.9)
    out = expand_box(box, (100, 100), 0.1)
    assert _bbox(out) == pytest.approx((0, 0, 100, 100))


def test_expand_box_legacy_origin_clamp_only():
    """Without far-edge clamping the size is always (1 + 2e) times the box."""
    box = Candidate(x1=0, y1=0, x2=100, y2=100, score=0.9)
    out = expand_box(box, (100, 100), 0.1, clamp_to_image=False)
    assert _bbox(out) == pytest.approx((0, 0, 120, 120))


def test_zero_expansion_is_identity():
    box = Candidate(x1=3.5, y1=4.5, x2=33.5, y2=44.5, score=0.9)
    assert _bbox(expand_box(box, (100, 100), 0.0)) == pytest.approx((3.5, 4.5, 30, 40))


def test_finalize_ids_order_and_selection():
    """Test ids, cluster order and default selection."""
    clusters = [
        Candidate(x1=0, y1=0, x2=50, y2=50, score=0.9),
        Candidate(x1=200, y1=200, x2=260, y2=260, score=0.7),
    ]

    faces = finalize(clusters, (640, 480), DetectionConfig(), run_id="abc")

    assert [f.id for f in faces] == ["face-0-abc", "face-1-abc"]
    assert all(f.selected for f in faces)
    assert faces[1].bbox.x == pytest.approx(197.0)


def test_finalize_ids_unique_across_runs():
    clusters = [Candidate(x1=0, y1=0, x2=50, y2=50, score=0.9)]
    first = finalize(clusters, (100, 100), DetectionConfig())
    second = finalize(clusters, (100, 100), DetectionConfig())

    assert first[0].id.startswith("face-0-")
    assert first[0].id != second[0].id


def test_face_to_dict():
    (face,) = finalize(
        [Candidate(x1=1, y1=1, x2=4, y2=4, score=0.9)], (10, 10),
        DetectionConfig(box_expansion=0.1), run_id="r",
    )
    assert face.to_dict() == {
        "id": "face-0-r",
        "bbox": {"x": 0.7, "y": 0.7, "width": 3.6, "height": 3.6},
        "selected": True,
    }


def test_finalize_empty():
    assert finalize([], (10, 10), DetectionConfig()) == []


def test_expansion_merges_faces_pushed_into_overlap():
    """Clusters just under the IoU limit that overlap more once expanded become one face."""
    a = Candidate(x1=100, y1=100, x2=200, y2=200, score=0.9)
    b = Candidate(x1=144, y1=100, x2=244, y2=200, score=0.8)
    clusters = suppress([a, b], DEFAULT_DETECTION_CONFIG)
    assert len(clusters) == 2

    faces = finalize(clusters, (1000, 1000), DEFAULT_DETECTION_CONFIG, run_id="m")

    assert [f.id for f in faces] == ["face-0-m"]
    assert _bbox(faces[0].bbox) == pytest.approx((95, 95, 154, 110))


def test_final_faces_never_exceed_cluster_iou():
    """No two final faces overlap by more than cluster_iou."""
    cfg = DEFAULT_DETECTION_CONFIG
    for seed in range(5):
        rng = np.random.RandomState(seed)
        candidates = []
        for _ in range(40):
            x, y = rng.uniform(0, 560, size=2)
            size = rng.uniform(20, 80)
            candidates.append(Candidate(
                x1=x, y1=y, x2=x + size, y2=y + size, score=float(rng.uniform(0.5, 1.0)),
            ))

        faces = finalize(suppress(candidates, cfg), (600, 600), cfg)

        boxes = [
            Candidate(x1=f.bbox.x, y1=f.bbox.y, x2=f.bbox.x + f.bbox.width,
                      y2=f.bbox.y + f.bbox.height, score=1.0)
            for f in faces
        ]
        for p, q in itertools.combinations(boxes, 2):
            assert iou(p, q) <= cfg.cluster_iou


def test_finalize_drops_boxes_outside_image():
    """A cluster lying beyond the frame never becomes an empty face."""
    outside = Candidate(x1=1010, y1=50, x2=1040, y2=80, score=0.9)
    assert finalize([outside], (1000, 1000), DEFAULT_DETECTION_CONFIG) == []


def test_merge_overlapping_keeps_earlier_position():
    boxes = [
        Candidate(x1=0, y1=0, x2=10, y2=10, score=0.9, source="a"),
        Candidate(x1=100, y1=100, x2=110, y2=110, score=0.8, source="b"),
        Candidate(x1=1, y1=0, x2=11, y2=10, score=0.7, source="c"),
    ]

    merged = merge_overlapping(boxes, 0.4)

    assert [(m.x1, m.x2, m.source) for m in merged] == [(0, 11, "a+c"), (100, 110, "b")]
