"""
Tests for the candidate generator pass sequence.
"""

import numpy as np
import pytest

from anonsnap.capabilities import Capabilities
from anonsnap.config import DEFAULT_DETECTION_CONFIG as CFG, DetectionConfig
from anonsnap.generator import CandidateGenerator, DetectorUnavailableError
from anonsnap.lazy import LazyDetector
from fakes import BrokenLoader, FakeBackend, FakeDetector, box, lazy


def _image(w=400, h=300):
    return np.zeros((h, w, 3), dtype=np.uint8)


def _generator(accurate, fast, backend=None, caps=None):
    return CandidateGenerator(
        accurate=accurate if isinstance(accurate, LazyDetector) else lazy(accurate),
        fast=fast if isinstance(fast, LazyDetector) else lazy(fast),
        backend=backend or FakeBackend(),
        capabilities=caps or Capabilities.standard(),
    )


def _coords(c):
    return (c.x1, c.y1, c.x2, c.y2)


def test_full_sequence_when_nothing_is_found():
    """With no detections every conditional pass runs once."""
    accurate, fast = FakeDetector("accurate"), FakeDetector("fast")

    result = _generator(accurate, fast).generate(_image(), CFG)

    assert result == []
    assert accurate.calls == [
        (300, 400),                 # working image
        (420, 560),                 # upscaled + contrast
        (600, 800), (600, 800), (600, 800), (600, 800),  # rotations
        (300, 400),                 # fallback
    ]
    # 8 scales, contrast, 4 rotations; no tiles for a small image
    assert len(fast.calls) == 13
    assert fast.calls[0] == (300, 400)
    scaled_widths = [w for _, w in fast.calls[:8]]
    assert scaled_widths == sorted(scaled_widths, reverse=True)


def test_constrained_profile_skips_tiling_and_augmentation():
    """A constrained device runs four scales and no augmentation."""
    accurate, fast = FakeDetector("accurate"), FakeDetector("fast")

    _generator(accurate, fast, caps=Capabilities.constrained()).generate(_image(), CFG)

    assert accurate.calls == [(300, 400), (300, 400)]
    assert len(fast.calls) == 4


def test_tile_detections_map_back_by_offset():
    """A face found on the last tile lands at tile offset plus local box."""
    def respond(image):
        return [box(10, 10, 60, 60)] if image.shape[:2] == (360, 360) else []

    fast = FakeDetector("fast", respond)
    result = _generator(FakeDetector("accurate"), fast).generate(_image(1000, 1000), CFG)

    assert [(_coords(c), c.source) for c in result] == [
        ((650, 650, 700, 700), "fast-tile"),
    ]


def test_downscaled_working_image_maps_to_original():
    """Boxes on the working image are scaled back to the source size."""
    def respond(image):
        return [box(100, 100, 200, 200, score=0.8)] if image.shape[:2] == (800, 1600) else []

    caps = Capabilities(max_detect_dim=1600, tiling_enabled=False,
                        augmentation_enabled=False, scales=(1.0,))
    accurate = FakeDetector("accurate", respond)
    result = _generator(accurate, FakeDetector("fast"), caps=caps).generate(
        _image(3200, 1600), CFG
    )

    assert accurate.calls[0] == (800, 1600)
    assert _coords(result[0]) == pytest.approx((200, 200, 400, 400))
    assert result[0].score == pytest.approx(0.8)
    assert result[0].source == "accurate"


def test_config_max_detect_dim_overrides_capabilities():
    """An explicit max_detect_dim shrinks the working image further."""
    accurate = FakeDetector("accurate")
    cfg = DetectionConfig(max_detect_dim=200, fallback_min_faces=0)

    _generator(accurate, FakeDetector("fast"), caps=Capabilities.constrained()).generate(
        _image(), cfg
    )

    assert accurate.calls == [(150, 200)]


def test_undersized_boxes_are_dropped():
    """Boxes below min_box_size in original coordinates never become candidates."""
    accurate = FakeDetector("accurate", lambda image: [
        box(0, 0, 5, 5), box(100, 100, 120, 120), box(50, 50, 50, 80),
    ])
    cfg = DetectionConfig(fallback_min_faces=0)

    result = _generator(accurate, FakeDetector("fast"), caps=Capabilities.constrained()).generate(
        _image(), cfg
    )

    assert [_coords(c) for c in result] == [(100, 100, 120, 120)]


def test_scores_are_clamped_to_unit_interval():
    accurate = FakeDetector("accurate", lambda image: [box(0, 0, 50, 50, score=1.7)])
    cfg = DetectionConfig(fallback_min_faces=0)

    result = _generator(accurate, FakeDetector("fast"), caps=Capabilities.constrained()).generate(
        _image(), cfg
    )

    assert result[0].score == 1.0


def test_enough_candidates_skip_augmentation():
    """Reaching the target early skips the contrast, rotation and fallback passes."""
    faces = [box(20 * i, 0, 20 * i + 15, 15) for i in range(14)]
    accurate = FakeDetector("accurate", lambda image: faces)
    fast = FakeDetector("fast")

    result = _generator(accurate, fast).generate(_image(), CFG)

    assert len(result) == 14
    assert accurate.calls == [(300, 400)]
    assert len(fast.calls) == 8


def test_rotation_loop_stops_at_target():
    """Rotation passes stop once the target count is reached."""
    def respond(image):
        if image.shape[:2] != (600, 800):
            return []
        return [box(100 + 60 * i, 300, 140 + 60 * i, 340) for i in range(5)]

    accurate = FakeDetector("accurate", respond)
    result = _generator(accurate, FakeDetector("fast")).generate(_image(), CFG)

    assert len(result) == 15
    assert accurate.calls == [(300, 400), (420, 560), (600, 800), (600, 800), (600, 800)]
    assert {c.source for c in result} == {"accurate-rot"}


def test_contrast_pass_failure_is_not_fatal():
    """An exception inside an augmentation pass is logged and skipped."""
    def respond(image):
        if image.shape[:2] == (420, 560):
            raise RuntimeError("inference failed")
        return []

    accurate = FakeDetector("accurate", respond)
    result = _generator(accurate, FakeDetector("fast")).generate(_image(), CFG)

    assert result == []
    # Rotation and fallback still ran
    assert accurate.calls[-1] == (300, 400)
    assert accurate.calls.count((600, 800)) == 4


def test_primary_pass_failure_propagates():
    """A failure outside the best-effort passes aborts the run."""
    def respond(image):
        raise RuntimeError("inference failed")

    with pytest.raises(RuntimeError, match="inference failed"):
        _generator(FakeDetector("accurate", respond), FakeDetector("fast")).generate(
            _image(), CFG
        )


def test_no_detector_available():
    """Both loaders failing is reported as DetectorUnavailableError."""
    generator = _generator(
        LazyDetector("accurate", BrokenLoader()),
        LazyDetector("fast", BrokenLoader()),
    )

    with pytest.raises(DetectorUnavailableError, match="No face detector available"):
        generator.generate(_image(), CFG)


def test_fast_only_when_accurate_cannot_load():
    """A missing accurate model degrades to the fast detector, retried at fallback."""
    loader = BrokenLoader()
    fast = FakeDetector("fast", lambda image: [box(10, 10, 60, 60)] if image.shape[:2] == (300, 400) else [])
    cfg = DetectionConfig(target_face_count=0)

    result = _generator(LazyDetector("accurate", loader), fast).generate(_image(), cfg)

    assert [c.source for c in result] == ["fast"]
    assert loader.attempts == 2


def test_cpu_retry_on_accelerated_backend():
    """Too few candidates on a GPU backend triggers a CPU retry, then restores."""
    backend = FakeBackend("opencl")
    fast = FakeDetector(
        "fast", lambda image: [box(10, 10, 60, 60)] if backend.name == "cpu" else []
    )

    result = _generator(
        FakeDetector("accurate"), fast, backend=backend, caps=Capabilities.constrained()
    ).generate(_image(), CFG)

    assert [c.source for c in result] == ["fast-cpu-retry"]
    assert backend.history == ["cpu", "opencl"]
    assert backend.name == "opencl"


def test_cpu_retry_failure_is_swallowed_and_backend_restored():
    backend = FakeBackend("opencl", fail_on="cpu")

    result = _generator(
        FakeDetector("accurate"), FakeDetector("fast"),
        backend=backend, caps=Capabilities.constrained(),
    ).generate(_image(), CFG)

    assert result == []
    assert backend.history == ["cpu", "opencl"]
    assert backend.name == "opencl"


def test_no_cpu_retry_on_cpu_backend():
    backend = FakeBackend("cpu")

    _generator(
        FakeDetector("accurate"), FakeDetector("fast"),
        backend=backend, caps=Capabilities.constrained(),
    ).generate(_image(), CFG)

    assert backend.history == []


def test_boxes_are_clipped_to_the_image():
    """Boxes past the frame are clipped; boxes wholly outside are dropped."""
    accurate = FakeDetector("accurate", lambda image: [
        box(410, 10, 450, 50),
        box(380, 100, 430, 150),
        box(-30, -20, 20, 40),
    ])
    cfg = DetectionConfig(fallback_min_faces=0)

    result = _generator(accurate, FakeDetector("fast"), caps=Capabilities.constrained()).generate(
        _image(), cfg
    )

    assert [_coords(c) for c in result] == [(380, 100, 400, 150), (0, 0, 20, 40)]
