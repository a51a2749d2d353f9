"""MediaPipe FaceLandmarker (Tasks API) backend.

The most accurate tier: besides a bounding box it yields the facial
landmarks needed for the landmark head-pose path.  The ``.task`` model file
must already be on disk; nothing is downloaded at runtime.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence

import cv2
import numpy as np

from domain.models import BoundingBox, FaceCandidate, FaceLandmarks
from vision.backends.base import DetectorBackend

logger = logging.getLogger(__name__)

DEFAULT_MODEL_PATH = Path("assets") / "face_landmarker.task"

# ── Landmark indices (FaceMesh / FaceLandmarker topology) ─────────────────────
_NOSE_TIP = 1
_LEFT_EYE_OUTER = 33
_RIGHT_EYE_OUTER = 263
_CHIN = 175
_FOREHEAD = 10

_BOX_PADDING = 20  # px added around the landmark extent
# Landmarks only exist when the model is confident a face is there
LANDMARK_CONFIDENCE = 0.9


def candidate_from_landmarks(
    lms: Sequence[Any], frame_width: int, frame_height: int
) -> FaceCandidate:
    """Build a candidate from normalised landmarks (objects with ``.x``/``.y``)."""

    def px(i: int) -> tuple[float, float]:
        return float(lms[i].x) * frame_width, float(lms[i].y) * frame_height

    xs = [float(p.x) * frame_width for p in lms]
    ys = [float(p.y) * frame_height for p in lms]
    padded = BoundingBox(
        x=min(xs) - _BOX_PADDING,
        y=min(ys) - _BOX_PADDING,
        width=max(xs) - min(xs) + 2 * _BOX_PADDING,
        height=max(ys) - min(ys) + 2 * _BOX_PADDING,
    )
    landmarks = FaceLandmarks(
        nose_tip=px(_NOSE_TIP),
        left_eye=px(_LEFT_EYE_OUTER),
        right_eye=px(_RIGHT_EYE_OUTER),
        chin=px(_CHIN),
        forehead=px(_FOREHEAD),
    )
    return FaceCandidate(
        bounding_box=padded.clamped(frame_width, frame_height),
        confidence=LANDMARK_CONFIDENCE,
        landmarks=landmarks,
    )


class LandmarkBackend(DetectorBackend):
    """Thin wrapper around the MediaPipe Tasks FaceLandmarker.

    MediaPipe landmarkers are not thread-safe; the base class guarantees
    :meth:`process` only ever runs on this backend's single worker thread.
    """

    name = "mediapipe"
    provides_landmarks = True

    def __init__(self, max_faces: int = 5, model_path: Optional[Path] = None) -> None:
        super().__init__(max_faces)
        self.model_path = model_path or DEFAULT_MODEL_PATH
        self._landmarker = None
        self._mp = None
        self._start_mono = 0.0
        self._last_ts_ms: int = -1

    def initialize(self) -> bool:
        if not self.model_path.exists():
            logger.info("FaceLandmarker model not found at %s", self.model_path)
            return False
        try:
            import mediapipe as mp
            from mediapipe.tasks.python import vision
            from mediapipe.tasks.python.core.base_options import BaseOptions
        except ImportError as exc:
            logger.info("MediaPipe not available: %s", exc)
            return False

        try:
            options = vision.FaceLandmarkerOptions(
                base_options=BaseOptions(model_asset_path=str(self.model_path.resolve())),
                # VIDEO mode uses temporal tracking between frames (faster than IMAGE)
                running_mode=vision.RunningMode.VIDEO,
                num_faces=self.max_faces,
                min_face_detection_confidence=0.5,
                min_face_presence_confidence=0.5,
                min_tracking_confidence=0.5,
                output_face_blendshapes=False,
                output_facial_transformation_matrixes=False,
            )
            self._landmarker = vision.FaceLandmarker.create_from_options(options)
        except (RuntimeError, ValueError) as exc:
            logger.warning("FaceLandmarker failed to load: %s", exc)
            return False

        self._mp = mp
        self._start_mono = time.monotonic()
        self._last_ts_ms = -1
        logger.info("MediaPipe FaceLandmarker ready (model=%s)", self.model_path.name)
        return True

    def process(self, frame_bgr: np.ndarray) -> list[FaceCandidate]:
        if self._landmarker is None:
            return []

        # Timestamp must be strictly monotonically increasing for VIDEO mode
        ts_ms = int((time.monotonic() - self._start_mono) * 1000)
        ts_ms = max(ts_ms, self._last_ts_ms + 1)
        self._last_ts_ms = ts_ms

        height, width = frame_bgr.shape[:2]
        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=frame_rgb)
        result = self._landmarker.detect_for_video(mp_image, ts_ms)

        return [
            candidate_from_landmarks(lms, width, height)
            for lms in result.face_landmarks
            if lms
        ]

    def _release(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
