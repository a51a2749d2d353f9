"""OpenCV Haar-cascade face detector (bounding boxes only)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from domain.models import BoundingBox, FaceCandidate
from vision.backends.base import DetectorBackend

logger = logging.getLogger(__name__)

_CASCADE_FILE = "haarcascade_frontalface_default.xml"

# The cascade reports no calibrated score, so every hit gets the same one
FIXED_CONFIDENCE = 0.9


def default_cascade_path() -> Optional[Path]:
    """Location of the frontal-face cascade bundled with the OpenCV wheel, if any."""
    data = getattr(cv2, "data", None)
    root = getattr(data, "haarcascades", None)
    if not root:
        return None
    return Path(root) / _CASCADE_FILE


class NativeBackend(DetectorBackend):
    name = "native"

    def __init__(self, max_faces: int = 5, cascade_path: Optional[Path] = None) -> None:
        super().__init__(max_faces)
        self._cascade_path = cascade_path
        self._cascade: Optional[cv2.CascadeClassifier] = None

    def initialize(self) -> bool:
        path = self._cascade_path or default_cascade_path()
        if path is None:
            logger.info("This OpenCV build ships no Haar cascades.")
            return False
        if not path.exists():
            logger.info("Haar cascade not found at %s", path)
            return False
        cascade = cv2.CascadeClassifier(str(path))
        if cascade.empty():
            logger.warning("Haar cascade at %s failed to load.", path)
            return False
        self._cascade = cascade
        logger.info("Native (Haar cascade) face detector ready.")
        return True

    def process(self, frame_bgr: np.ndarray) -> list[FaceCandidate]:
        if self._cascade is None:
            return []
        gray = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2GRAY)
        hits = self._cascade.detectMultiScale(
            gray, scaleFactor=1.1, minNeighbors=5, minSize=(60, 60)
        )
        # Largest faces first
        ordered = sorted(hits, key=lambda r: int(r[2]) * int(r[3]), reverse=True)
        return [
            FaceCandidate(
                bounding_box=BoundingBox(float(x), float(y), float(w), float(h)),
                confidence=FIXED_CONFIDENCE,
            )
            for (x, y, w, h) in ordered[: self.max_faces]
        ]

    def _release(self) -> None:
        self._cascade = None
