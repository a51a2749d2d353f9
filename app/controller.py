"""Session lifecycle controller – owns the detector, pipeline and scheduler."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from app.config import Config
from app.scheduler import FrameScheduler
from domain.metrics import StatisticsAggregator
from domain.models import DetectedFace, FrameDetectionResult, RollingStats
from vision.camera import FrameSource
from vision.detector import MultiStrategyDetector, default_backends
from vision.pipeline import FaceAnalysisService

logger = logging.getLogger(__name__)

# Config fields that map straight onto EyeContactSettings
_SETTINGS_FIELDS = ("yaw_threshold", "pitch_threshold", "confidence_threshold")


class Controller:
    """One detection session.

    Everything the pipeline needs is constructed here once and injected
    downwards; nothing is shared through module globals, so two controllers
    never interfere.
    """

    def __init__(
        self,
        config: Config,
        detector: Optional[MultiStrategyDetector] = None,
        on_faces_detected: Optional[Callable[[list[DetectedFace]], None]] = None,
        on_eye_contact_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        config.validate()
        self.config = config
        self.detector = detector or MultiStrategyDetector(
            default_backends(config.max_detected_faces, Path(config.landmark_model_path)),
            max_faces=config.max_detected_faces,
            timeout_ms=config.detect_timeout_ms,
        )
        self.service = FaceAnalysisService(self.detector, config.eye_contact_settings())
        self.aggregator = StatisticsAggregator(config.history_size)
        self.scheduler = FrameScheduler(
            self.service,
            self.aggregator,
            process_interval_ms=config.process_interval_ms,
            tick_interval_ms=config.tick_interval_ms,
            on_faces_detected=on_faces_detected,
            on_eye_contact_change=on_eye_contact_change,
        )

    # ------------------------------------------------------------------
    # Startup / Shutdown
    # ------------------------------------------------------------------

    def start(self, source: FrameSource) -> None:
        """Initialise detection and start the scheduler on the running loop."""
        if not self.detector.initialize():
            raise RuntimeError("No face detection backend is available.")
        self.scheduler.source = source
        if not self.scheduler.start():
            raise RuntimeError("Frame scheduler could not be started.")
        logger.info("Controller: detection running on backend '%s'.", self.detector.backend_name)

    def stop(self) -> None:
        self.scheduler.stop()
        logger.info("Controller: detection stopped.")

    @property
    def is_running(self) -> bool:
        return self.scheduler.enabled

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_settings(self, **changes: Any) -> None:
        """Apply a partial configuration update to the live session.

        Accepts ``yaw_threshold``, ``pitch_threshold``, ``confidence_threshold``,
        ``eye_contact_mode``, ``max_detected_faces`` and ``process_interval_ms``.
        Raises ``ValueError`` for unknown keys or out-of-range values; on error
        nothing is changed.
        """
        allowed = set(_SETTINGS_FIELDS) | {
            "eye_contact_mode", "max_detected_faces", "process_interval_ms",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        settings = self.service.settings.with_updates(
            mode=changes.get("eye_contact_mode"),
            **{k: changes.get(k) for k in _SETTINGS_FIELDS},
        )
        max_faces = changes.get("max_detected_faces", self.config.max_detected_faces)
        interval = changes.get("process_interval_ms", self.config.process_interval_ms)
        if max_faces < 1:
            raise ValueError("max_detected_faces must be >= 1")
        if interval < 0:
            raise ValueError("process_interval_ms must be >= 0")

        self.service.update_settings(settings)
        self.detector.max_faces = max_faces
        self.scheduler.process_interval_ms = interval
        for key, value in changes.items():
            if value is not None:
                setattr(self.config, key, getattr(value, "value", value))

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def reset_stats(self) -> None:
        """Start a fresh scored sub-session (e.g. the next interview question)."""
        self.scheduler.reset_stats()
        logger.info("Statistics reset.")

    @property
    def stats(self) -> RollingStats:
        return self.scheduler.stats

    @property
    def last_result(self) -> FrameDetectionResult:
        return self.scheduler.last_result
