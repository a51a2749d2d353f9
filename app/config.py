"""Application-wide configuration with typed fields and sane defaults."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from domain.models import EyeContactMode, EyeContactSettings

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path("config.json")


@dataclass
class Config:
    # Camera
    camera_index: int = 0

    # Eye contact thresholds (deliberately forgiving)
    yaw_threshold: float = 40.0         # degrees
    pitch_threshold: float = 35.0       # degrees
    confidence_threshold: float = 0.1   # candidates below this are ignored
    eye_contact_mode: str = EyeContactMode.ANY.value

    # Detection
    max_detected_faces: int = 5
    detect_timeout_ms: float = 1000.0
    landmark_model_path: str = "assets/face_landmarker.task"

    # Scheduling
    process_interval_ms: float = 150.0  # minimum gap between processed frames
    tick_interval_ms: float = 16.0      # ~60 Hz refresh signal

    # Statistics
    history_size: int = 100             # rolling window length (frames)

    # UI
    show_head_pose: bool = False

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of range."""
        self.eye_contact_settings()
        if self.max_detected_faces < 1:
            raise ValueError("max_detected_faces must be >= 1")
        if self.history_size < 1:
            raise ValueError("history_size must be >= 1")
        if self.process_interval_ms < 0 or self.tick_interval_ms <= 0:
            raise ValueError("process_interval_ms must be >= 0 and tick_interval_ms > 0")
        if self.detect_timeout_ms <= 0:
            raise ValueError("detect_timeout_ms must be > 0")

    def eye_contact_settings(self) -> EyeContactSettings:
        return EyeContactSettings(
            yaw_threshold=self.yaw_threshold,
            pitch_threshold=self.pitch_threshold,
            confidence_threshold=self.confidence_threshold,
            mode=EyeContactMode(self.eye_contact_mode),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Optional[Path] = None) -> None:
        with open(path or _CONFIG_PATH, "w", encoding="utf-8") as fh:
            json.dump(asdict(self), fh, indent=2)
        logger.debug("Config saved.")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        path = path or _CONFIG_PATH
        if not path.exists():
            return cls()
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
            cfg = cls()
            for k, v in data.items():
                if hasattr(cfg, k):
                    setattr(cfg, k, v)
            cfg.validate()
            logger.debug("Config loaded from %s", path)
            return cfg
        except (OSError, json.JSONDecodeError, ValueError) as exc:
            logger.warning("Could not load config (%s); using defaults.", exc)
            return cls()
