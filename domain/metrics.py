"""Rolling eye-contact statistics for a detection session."""

from __future__ import annotations

import logging
import statistics
from collections import deque
from typing import Any

from domain.models import DetectedFace, FrameDetectionResult, RollingStats

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 100


class StatisticsAggregator:
    """Accumulates per-frame results into lifetime counters and a rolling window.

    Single writer: only the frame-processing task calls :meth:`ingest` and
    :meth:`reset`.  Readers take a :meth:`snapshot`, which may lag by one
    frame.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be >= 1, got {capacity}")
        self._history: deque[bool] = deque(maxlen=capacity)
        self._total_frames = 0
        self._eye_contact_frames = 0
        self._average_confidence = 0.0
        self._current_faces: tuple[DetectedFace, ...] = ()
        self._eye_contact_active = False
        self._snapshot = RollingStats()

    @property
    def capacity(self) -> int:
        return self._history.maxlen  # type: ignore[return-value]

    def ingest(self, result: FrameDetectionResult) -> RollingStats:
        self._total_frames += 1
        if result.eye_contact_detected:
            self._eye_contact_frames += 1

        # deque(maxlen=...) drops the oldest entry once full
        self._history.append(result.eye_contact_detected)

        if result.faces:
            self._average_confidence = statistics.fmean(f.confidence for f in result.faces)
        else:
            self._average_confidence = 0.0

        self._current_faces = tuple(result.faces)
        self._eye_contact_active = result.eye_contact_detected
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def reset(self) -> None:
        self._history.clear()
        self._total_frames = 0
        self._eye_contact_frames = 0
        self._average_confidence = 0.0
        self._current_faces = ()
        self._eye_contact_active = False
        self._snapshot = RollingStats()
        logger.debug("Statistics reset.")

    def snapshot(self) -> RollingStats:
        return self._snapshot

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _build_snapshot(self) -> RollingStats:
        history = tuple(self._history)
        pct = sum(history) / len(history) * 100.0 if history else 0.0
        return RollingStats(
            total_frames_processed=self._total_frames,
            eye_contact_frames=self._eye_contact_frames,
            eye_contact_percentage=pct,
            average_confidence=self._average_confidence,
            recent_eye_contact_history=history,
            current_faces=self._current_faces,
            is_eye_contact_active=self._eye_contact_active,
        )


def summarize_faces(faces: list[DetectedFace]) -> dict[str, Any]:
    """Per-frame breakdown of how many of the visible faces make eye contact."""
    total = len(faces)
    in_contact = sum(1 for f in faces if f.eye_contact)
    return {
        "total_faces": total,
        "eye_contact_count": in_contact,
        "eye_contact_percentage": round(in_contact / total * 100, 1) if total else 0.0,
    }
