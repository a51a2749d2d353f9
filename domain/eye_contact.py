"""Heuristic eye-contact classification.

Three independent signals are evaluated for every face:

1. head pose   - yaw and pitch within the configured thresholds
2. position    - face centre reasonably close to the frame centre
3. presence    - face occupies a plausible share of the frame

In ``EyeContactMode.ANY`` (default) a face counts as making eye contact when
any signal passes.  This favours recall: bounding-box-only pose estimates are
noisy and the consumer is a feedback tool.  ``EyeContactMode.STRICT`` requires
both head pose and position instead.
"""

from __future__ import annotations

import logging
from typing import Optional

from domain.models import (
    BoundingBox,
    EyeContactDecision,
    EyeContactMode,
    EyeContactSettings,
    HeadPose,
)

logger = logging.getLogger(__name__)

MAX_HORIZONTAL_OFFSET = 0.45  # fraction of frame width
MAX_VERTICAL_OFFSET = 0.40    # fraction of frame height
MIN_AREA_RATIO = 0.02
MAX_AREA_RATIO = 0.50


class EyeContactClassifier:
    def __init__(self, settings: Optional[EyeContactSettings] = None) -> None:
        self.settings = settings or EyeContactSettings()

    def evaluate(
        self,
        head_pose: HeadPose,
        box: BoundingBox,
        frame_width: int,
        frame_height: int,
    ) -> EyeContactDecision:
        """Run all heuristics and report which of them passed."""
        s = self.settings
        pose_ok = (
            abs(head_pose.yaw) <= s.yaw_threshold
            and abs(head_pose.pitch) <= s.pitch_threshold
        )

        if frame_width <= 0 or frame_height <= 0:
            position_ok = presence_ok = False
        else:
            cx, cy = box.center
            h_offset = abs(cx - frame_width / 2.0) / frame_width
            v_offset = abs(cy - frame_height / 2.0) / frame_height
            position_ok = h_offset <= MAX_HORIZONTAL_OFFSET and v_offset <= MAX_VERTICAL_OFFSET

            area_ratio = box.area / float(frame_width * frame_height)
            presence_ok = MIN_AREA_RATIO <= area_ratio <= MAX_AREA_RATIO

        if s.mode == EyeContactMode.STRICT:
            verdict = pose_ok and position_ok
        else:
            verdict = pose_ok or position_ok or presence_ok

        decision = EyeContactDecision(
            head_pose=pose_ok,
            position=position_ok,
            presence=presence_ok,
            eye_contact=verdict,
        )
        logger.debug(
            "Eye contact: yaw=%.1f pitch=%.1f pose=%s position=%s presence=%s -> %s (%s)",
            head_pose.yaw,
            head_pose.pitch,
            pose_ok,
            position_ok,
            presence_ok,
            verdict,
            decision.triggered_by,
        )
        return decision

    def classify(
        self,
        head_pose: HeadPose,
        box: BoundingBox,
        frame_width: int,
        frame_height: int,
    ) -> bool:
        return self.evaluate(head_pose, box, frame_width, frame_height).eye_contact
