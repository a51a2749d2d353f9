"""Core data models for the eye-contact detection pipeline."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class EyeContactMode(str, Enum):
    ANY = "any"        # any heuristic passing counts as eye contact
    STRICT = "strict"  # head pose AND position must both pass


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned face box in source-frame pixel coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    @property
    def area(self) -> float:
        return self.width * self.height

    def clamped(self, frame_width: float, frame_height: float) -> "BoundingBox":
        """Return a copy forced inside ``[0, frame_width] x [0, frame_height]``."""
        x0 = min(max(self.x, 0.0), frame_width)
        y0 = min(max(self.y, 0.0), frame_height)
        x1 = min(max(self.x + self.width, 0.0), frame_width)
        y1 = min(max(self.y + self.height, 0.0), frame_height)
        return BoundingBox(x0, y0, max(0.0, x1 - x0), max(0.0, y1 - y0))

    def scaled(self, sx: float, sy: float) -> "BoundingBox":
        return BoundingBox(self.x * sx, self.y * sy, self.width * sx, self.height * sy)


@dataclass(frozen=True)
class HeadPose:
    yaw: float    # degrees, left-right
    pitch: float  # degrees, up-down
    roll: float   # degrees, tilt


Point = tuple[float, float]


@dataclass(frozen=True)
class FaceLandmarks:
    """The five facial reference points used for head-pose estimation (pixels)."""

    nose_tip: Point
    left_eye: Point   # outer corner
    right_eye: Point  # outer corner
    chin: Point
    forehead: Point


@dataclass
class FaceCandidate:
    """Raw detector output before pose estimation and classification."""

    bounding_box: BoundingBox
    confidence: float
    landmarks: Optional[FaceLandmarks] = None


@dataclass
class DetectedFace:
    id: str
    label: str
    confidence: float
    bounding_box: BoundingBox
    head_pose: HeadPose
    eye_contact: bool = False


@dataclass
class FrameDetectionResult:
    """Everything known about one processed frame."""

    faces: list[DetectedFace] = field(default_factory=list)
    eye_contact_detected: bool = False
    confidence: float = 0.0

    @classmethod
    def empty(cls) -> "FrameDetectionResult":
        return cls()

    @classmethod
    def from_faces(cls, faces: list[DetectedFace]) -> "FrameDetectionResult":
        return cls(
            faces=list(faces),
            eye_contact_detected=any(f.eye_contact for f in faces),
            confidence=max((f.confidence for f in faces), default=0.0),
        )


@dataclass(frozen=True)
class EyeContactSettings:
    yaw_threshold: float = 40.0    # degrees
    pitch_threshold: float = 35.0  # degrees
    confidence_threshold: float = 0.1
    mode: EyeContactMode = EyeContactMode.ANY

    def __post_init__(self) -> None:
        if self.yaw_threshold < 0 or self.pitch_threshold < 0:
            raise ValueError("Pose thresholds must be non-negative.")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )
        if not isinstance(self.mode, EyeContactMode):
            object.__setattr__(self, "mode", EyeContactMode(self.mode))

    def with_updates(self, **changes) -> "EyeContactSettings":
        """Return new settings with the non-``None`` values of *changes* applied."""
        return dataclasses.replace(
            self, **{k: v for k, v in changes.items() if v is not None}
        )


@dataclass(frozen=True)
class EyeContactDecision:
    """Which heuristics passed for one face, and the resulting verdict."""

    head_pose: bool
    position: bool
    presence: bool
    eye_contact: bool

    @property
    def triggered_by(self) -> str:
        if not self.eye_contact:
            return "none"
        if self.head_pose:
            return "head_pose"
        if self.position:
            return "position"
        return "presence"


@dataclass(frozen=True)
class RollingStats:
    """Read-only snapshot of the session statistics."""

    total_frames_processed: int = 0
    eye_contact_frames: int = 0
    eye_contact_percentage: float = 0.0
    average_confidence: float = 0.0
    recent_eye_contact_history: tuple[bool, ...] = ()
    current_faces: tuple[DetectedFace, ...] = ()
    is_eye_contact_active: bool = False

    @property
    def lifetime_eye_contact_percentage(self) -> float:
        if self.total_frames_processed == 0:
            return 0.0
        return self.eye_contact_frames / self.total_frames_processed * 100.0
