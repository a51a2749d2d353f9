"""Tests for the detector backends and the multi-strategy fallback."""

import asyncio
import threading
import time
from types import SimpleNamespace

import cv2
import numpy as np
import pytest

from domain.models import BoundingBox, FaceCandidate
from vision.backends.base import DetectorBackend
from vision.backends.landmark import LandmarkBackend, candidate_from_landmarks
from vision.backends.native import NativeBackend, default_cascade_path
from vision.backends.skin_tone import SkinToneBackend, find_regions, skin_mask
from vision.detector import MultiStrategyDetector

_SKIN_BGR = (90, 120, 200)  # R=200 G=120 B=90


def _frame(width: int = 320, height: int = 240) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


def _paint(frame: np.ndarray, x: int, y: int, w: int, h: int, colour=_SKIN_BGR) -> np.ndarray:
    frame[y:y + h, x:x + w] = colour
    return frame


class FakeBackend(DetectorBackend):
    def __init__(self, name, available=True, candidates=None, error=None, delay=0.0,
                 init_error=None, close_error=None):
        super().__init__()
        self.name = name
        self.available = available
        self.candidates = candidates or []
        self.error = error
        self.delay = delay
        self.init_error = init_error
        self.close_error = close_error
        self.init_calls = 0
        self.closed = 0

    def initialize(self):
        self.init_calls += 1
        if self.init_error:
            raise self.init_error
        return self.available

    def process(self, frame_bgr):
        return list(self.candidates)

    async def detect(self, frame_bgr):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.process(frame_bgr)

    def _release(self):
        self.closed += 1
        if self.close_error:
            raise self.close_error


def _candidate(confidence: float) -> FaceCandidate:
    return FaceCandidate(BoundingBox(10.0, 10.0, 50.0, 50.0), confidence)


# ── Skin-tone heuristic ─────────────────────────────────────────────────────


def test_no_skin_pixels_yields_no_faces():
    frame = _frame()
    frame[:, :] = (200, 80, 20)  # blue-dominant
    assert not skin_mask(frame).any()
    assert SkinToneBackend().process(frame) == []


def test_skin_rule():
    frame = _frame(4, 1)
    frame[0, 0] = _SKIN_BGR
    frame[0, 1] = (90, 190, 200)   # |R-G| too small
    frame[0, 2] = (90, 120, 90)    # R too dark
    frame[0, 3] = (210, 120, 200)  # blue beats red
    assert skin_mask(frame).tolist() == [[True, False, False, False]]


def test_skin_patch_becomes_face():
    frame = _paint(_frame(), 100, 60, 50, 40)  # 2000 px
    faces = SkinToneBackend().process(frame)
    assert len(faces) == 1
    assert faces[0].bounding_box == BoundingBox(100.0, 60.0, 50.0, 40.0)
    assert faces[0].confidence == pytest.approx(0.2)
    assert faces[0].landmarks is None


def test_confidence_is_capped():
    frame = _paint(_frame(), 0, 0, 200, 100)  # 20000 px
    faces = SkinToneBackend().process(frame)
    assert faces[0].confidence == pytest.approx(0.9)


def test_small_region_is_not_promoted():
    frame = _paint(_frame(), 10, 10, 30, 30)  # 900 px: a region, not a face
    assert len(find_regions(skin_mask(frame))) == 1
    assert SkinToneBackend().process(frame) == []


def test_separate_patches_give_separate_faces():
    frame = _paint(_frame(), 10, 10, 40, 40)
    _paint(frame, 200, 100, 40, 40)
    faces = SkinToneBackend().process(frame)
    boxes = sorted((f.bounding_box.x, f.bounding_box.y) for f in faces)
    assert boxes == [(10.0, 10.0), (200.0, 100.0)]


def test_flood_fill_is_four_connected():
    mask = np.eye(3, dtype=bool)  # diagonal pixels only touch at corners
    regions = find_regions(mask, min_area=0)
    assert len(regions) == 3
    assert all(r.area == 1 for r in regions)


def test_regions_match_opencv_labelling():
    mask = np.random.default_rng(7).random((60, 80)) > 0.45
    ours = sorted(
        (int(r.bounding_box.x), int(r.bounding_box.y),
         int(r.bounding_box.width), int(r.bounding_box.height), r.area)
        for r in find_regions(mask, min_area=0)
    )
    n, _labels, stats, _centroids = cv2.connectedComponentsWithStats(
        mask.astype(np.uint8), connectivity=4
    )
    theirs = sorted(tuple(int(v) for v in stats[i]) for i in range(1, n))
    assert ours == theirs


def test_skin_backend_async_detect():
    backend = SkinToneBackend()
    assert backend.initialize() is True
    frame = _paint(_frame(), 100, 60, 50, 40)
    try:
        faces = asyncio.run(backend.detect(frame))
    finally:
        backend.close()
    assert len(faces) == 1


# ── Native and landmark tiers ───────────────────────────────────────────────


_CASCADE = default_cascade_path()
_HAS_CASCADE = _CASCADE is not None and _CASCADE.exists()


@pytest.mark.skipif(not _HAS_CASCADE, reason="OpenCV build ships no Haar cascade")
def test_native_backend_on_blank_frame():
    backend = NativeBackend()
    assert backend.initialize() is True
    assert backend.process(_frame()) == []
    backend.close()
    assert backend.process(_frame()) == []


def test_native_backend_without_bundled_cascades(monkeypatch):
    monkeypatch.delattr(cv2, "data", raising=False)
    assert default_cascade_path() is None
    assert NativeBackend().initialize() is False


def test_native_backend_missing_cascade(tmp_path):
    assert NativeBackend(cascade_path=tmp_path / "missing.xml").initialize() is False


def test_landmark_backend_without_model(tmp_path):
    backend = LandmarkBackend(model_path=tmp_path / "face_landmarker.task")
    assert backend.initialize() is False
    assert backend.provides_landmarks is True


def test_candidate_from_landmarks():
    points = [SimpleNamespace(x=0.5, y=0.5) for _ in range(478)]
    points[1] = SimpleNamespace(x=0.5, y=0.5)     # nose tip
    points[33] = SimpleNamespace(x=0.4, y=0.4)    # left eye corner
    points[263] = SimpleNamespace(x=0.6, y=0.4)   # right eye corner
    points[175] = SimpleNamespace(x=0.5, y=0.8)   # chin
    points[10] = SimpleNamespace(x=0.5, y=0.1)    # forehead

    candidate = candidate_from_landmarks(points, 200, 100)

    assert candidate.confidence == pytest.approx(0.9)
    assert candidate.landmarks.nose_tip == pytest.approx((100.0, 50.0))
    assert candidate.landmarks.left_eye == pytest.approx((80.0, 40.0))
    assert candidate.landmarks.right_eye == pytest.approx((120.0, 40.0))
    assert candidate.landmarks.chin == pytest.approx((100.0, 80.0))
    assert candidate.landmarks.forehead == pytest.approx((100.0, 10.0))
    # Extent x 80..120, y 10..80, padded by 20 and clipped to the 200x100 frame
    box = candidate.bounding_box
    assert (box.x, box.y) == pytest.approx((60.0, 0.0))
    assert (box.width, box.height) == pytest.approx((80.0, 100.0))


# ── MultiStrategyDetector ───────────────────────────────────────────────────


def test_first_available_tier_wins():
    tiers = [FakeBackend("a", available=False), FakeBackend("b"), FakeBackend("c")]
    detector = MultiStrategyDetector(tiers)
    assert detector.initialize() is True
    assert detector.backend_name == "b"
    assert [t.init_calls for t in tiers] == [1, 1, 0]


def test_initialize_is_idempotent():
    tiers = [FakeBackend("a")]
    detector = MultiStrategyDetector(tiers)
    assert detector.initialize() is True
    assert detector.initialize() is True
    assert tiers[0].init_calls == 1


def test_tier_raising_during_init_falls_through():
    tiers = [FakeBackend("a", init_error=RuntimeError("boom")), FakeBackend("b")]
    detector = MultiStrategyDetector(tiers)
    assert detector.initialize() is True
    assert detector.backend_name == "b"


def test_all_tiers_failing():
    detector = MultiStrategyDetector([FakeBackend("a", available=False),
                                      FakeBackend("b", available=False)])
    assert detector.initialize() is False
    assert detector.is_initialized is False
    assert asyncio.run(detector.detect(_frame())) == []


def test_detect_error_becomes_empty_list():
    detector = MultiStrategyDetector([FakeBackend("a", error=ValueError("bad frame"))])
    detector.initialize()
    assert asyncio.run(detector.detect(_frame())) == []


def test_detect_timeout_becomes_empty_list():
    detector = MultiStrategyDetector(
        [FakeBackend("slow", candidates=[_candidate(0.9)], delay=0.5)], timeout_ms=20
    )
    detector.initialize()
    assert asyncio.run(detector.detect(_frame())) == []


def test_detect_caps_face_count_by_confidence():
    candidates = [_candidate(c) for c in (0.3, 0.9, 0.5, 0.7)]
    detector = MultiStrategyDetector([FakeBackend("a", candidates=candidates)], max_faces=2)
    detector.initialize()
    faces = asyncio.run(detector.detect(_frame()))
    assert [f.confidence for f in faces] == [0.9, 0.7]


def test_close_releases_backend_and_allows_reinit():
    backend = FakeBackend("a")
    detector = MultiStrategyDetector([backend])
    detector.initialize()
    detector.close()
    assert backend.closed == 1
    assert detector.is_initialized is False
    detector.close()
    assert backend.closed == 1
    assert detector.initialize() is True
    assert backend.init_calls == 2


def test_close_errors_are_swallowed():
    backend = FakeBackend("a", close_error=RuntimeError("leak"))
    detector = MultiStrategyDetector([backend])
    detector.initialize()
    detector.close()
    assert detector.is_initialized is False


class SlowThreadBackend(DetectorBackend):
    """Runs a slow process() on the real executor and records the order of events."""

    name = "slow-thread"

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.events = []

    def initialize(self):
        return True

    def process(self, frame_bgr):
        self.started.set()
        time.sleep(0.2)
        self.events.append("processed")
        return []

    def _release(self):
        self.events.append("released")


def test_close_after_timeout_waits_for_running_process():
    backend = SlowThreadBackend()
    detector = MultiStrategyDetector([backend], timeout_ms=20)
    detector.initialize()

    assert asyncio.run(detector.detect(_frame())) == []
    assert backend.started.wait(1.0)
    detector.close()

    assert backend.events == ["processed", "released"]
