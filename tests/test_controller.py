"""Tests for session wiring and live settings updates."""

import asyncio

import numpy as np
import pytest

from app.config import Config
from app.controller import Controller
from domain.models import BoundingBox, EyeContactMode, FaceCandidate
from vision.backends.base import DetectorBackend
from vision.camera import Frame
from vision.detector import MultiStrategyDetector


class CentredFaceBackend(DetectorBackend):
    name = "centred"

    def __init__(self, available: bool = True) -> None:
        super().__init__()
        self.available = available

    def initialize(self):
        return self.available

    def process(self, frame_bgr):
        h, w = frame_bgr.shape[:2]
        return [FaceCandidate(BoundingBox(w / 4, h / 4, w / 2, h / 2), 0.8)]

    async def detect(self, frame_bgr):
        return self.process(frame_bgr)


class StillSource:
    def __init__(self) -> None:
        self.count = 0

    width = 320
    height = 240
    is_ready = True

    def read(self):
        self.count += 1
        return Frame(np.zeros((240, 320, 3), dtype=np.uint8), 0.0, self.count)


def _controller(available: bool = True, **callbacks) -> Controller:
    detector = MultiStrategyDetector([CentredFaceBackend(available)])
    return Controller(Config(process_interval_ms=0, tick_interval_ms=5), detector, **callbacks)


def test_start_fails_without_backend():
    controller = _controller(available=False)

    async def scenario():
        controller.start(StillSource())

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    assert controller.is_running is False


def test_session_runs_and_reports():
    changes = []
    controller = _controller(on_eye_contact_change=changes.append)

    async def scenario():
        controller.start(StillSource())
        await asyncio.sleep(0.2)
        controller.stop()

    asyncio.run(scenario())
    stats = controller.stats
    assert stats.total_frames_processed > 0
    assert stats.eye_contact_percentage == pytest.approx(100.0)
    assert stats.average_confidence == pytest.approx(0.8)
    assert controller.last_result.faces[0].id == "centred_face_0"
    assert changes == [True]
    assert controller.detector.is_initialized is False


class GatedBackend(CentredFaceBackend):
    """Blocks in detect until the test opens the gate."""

    name = "gated"

    def __init__(self) -> None:
        super().__init__()
        self.gate = None
        self.released = 0

    async def detect(self, frame_bgr):
        if self.gate is not None:
            await self.gate.wait()
        return self.process(frame_bgr)

    def _release(self):
        self.released += 1


def test_restart_while_frame_in_flight_keeps_detecting():
    backend = GatedBackend()
    detector = MultiStrategyDetector([backend])
    controller = Controller(Config(process_interval_ms=0, tick_interval_ms=60_000), detector)
    source = StillSource()

    async def scenario():
        backend.gate = asyncio.Event()
        controller.start(source)
        stale = asyncio.create_task(controller.scheduler.tick())
        await asyncio.sleep(0)
        controller.stop()
        controller.start(source)

        backend.gate.set()
        await stale
        await asyncio.sleep(0)
        initialized = detector.is_initialized
        processed = await controller.scheduler.tick()
        faces = list(controller.last_result.faces)
        controller.stop()
        return initialized, processed, faces

    initialized, processed, faces = asyncio.run(scenario())
    assert initialized is True
    assert processed is True
    assert len(faces) == 1
    assert backend.released == 1


def test_reset_stats():
    controller = _controller()

    async def scenario():
        controller.start(StillSource())
        await asyncio.sleep(0.1)
        controller.reset_stats()
        snapshot = controller.stats
        controller.stop()
        return snapshot

    snapshot = asyncio.run(scenario())
    assert snapshot.total_frames_processed == 0
    assert snapshot.recent_eye_contact_history == ()


def test_update_settings_propagates():
    controller = _controller()
    controller.update_settings(
        yaw_threshold=12, eye_contact_mode="strict", process_interval_ms=250, max_detected_faces=2
    )
    settings = controller.service.settings
    assert settings.yaw_threshold == 12
    assert settings.pitch_threshold == 35.0
    assert settings.mode is EyeContactMode.STRICT
    assert controller.scheduler.process_interval_ms == 250
    assert controller.detector.max_faces == 2
    assert controller.config.eye_contact_mode == "strict"
    assert controller.config.yaw_threshold == 12


def test_update_settings_rejects_bad_input():
    controller = _controller()
    with pytest.raises(ValueError):
        controller.update_settings(roll_threshold=5)
    with pytest.raises(ValueError):
        controller.update_settings(confidence_threshold=2.0)
    with pytest.raises(ValueError):
        controller.update_settings(yaw_threshold=10, max_detected_faces=0)
    # Nothing was applied
    assert controller.service.settings.yaw_threshold == 40.0
    assert controller.config.yaw_threshold == 40.0
