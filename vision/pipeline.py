"""Per-frame analysis: detection, head pose and eye-contact classification."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

import numpy as np

from domain.eye_contact import EyeContactClassifier
from domain.head_pose import HeadPoseEstimator
from domain.models import DetectedFace, EyeContactSettings, FrameDetectionResult
from vision.detector import MultiStrategyDetector

logger = logging.getLogger(__name__)


class FaceAnalysisService:
    """Owned once per session and handed to the scheduler.

    Turns a raw BGR frame into a :class:`FrameDetectionResult`.  Errors in any
    stage are logged and reported as an empty result so a single bad frame
    never stops the drive loop.
    """

    def __init__(
        self,
        detector: MultiStrategyDetector,
        settings: Optional[EyeContactSettings] = None,
        estimator: Optional[HeadPoseEstimator] = None,
        classifier: Optional[EyeContactClassifier] = None,
    ) -> None:
        self.detector = detector
        self.estimator = estimator or HeadPoseEstimator()
        self.classifier = classifier or EyeContactClassifier(settings)
        if settings is not None:
            self.classifier.settings = settings

    @property
    def settings(self) -> EyeContactSettings:
        return self.classifier.settings

    def update_settings(self, settings: EyeContactSettings) -> None:
        self.classifier.settings = settings
        logger.info(
            "Eye contact settings: yaw<=%.0f pitch<=%.0f conf>=%.2f mode=%s",
            settings.yaw_threshold,
            settings.pitch_threshold,
            settings.confidence_threshold,
            settings.mode.value,
        )

    async def analyze(self, frame_bgr: np.ndarray) -> FrameDetectionResult:
        candidates = await self.detector.detect(frame_bgr)
        try:
            return self._classify(candidates, frame_bgr.shape[1], frame_bgr.shape[0])
        except Exception:
            logger.exception("Frame analysis failed; reporting no faces.")
            return FrameDetectionResult.empty()

    def _classify(self, candidates, frame_width: int, frame_height: int) -> FrameDetectionResult:
        prefix = self.detector.backend_name or "face"
        threshold = self.settings.confidence_threshold
        faces: list[DetectedFace] = []

        for candidate in candidates:
            if candidate.confidence < threshold:
                continue
            index = len(faces)
            box = candidate.bounding_box.clamped(frame_width, frame_height)
            pose = self.estimator.estimate(
                dataclasses.replace(candidate, bounding_box=box), frame_width, frame_height
            )
            eye_contact = self.classifier.classify(pose, box, frame_width, frame_height)
            faces.append(
                DetectedFace(
                    id=f"{prefix}_face_{index}",
                    label=f"User {index + 1}",
                    confidence=max(0.0, min(1.0, candidate.confidence)),
                    bounding_box=box,
                    head_pose=pose,
                    eye_contact=eye_contact,
                )
            )

        return FrameDetectionResult.from_faces(faces)
