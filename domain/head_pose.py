"""Geometric head-pose estimation from landmarks or a bare bounding box."""

from __future__ import annotations

import logging
import math

from domain.models import BoundingBox, FaceCandidate, FaceLandmarks, HeadPose

logger = logging.getLogger(__name__)

# Outputs are clamped to realistic ranges to suppress landmark noise
YAW_LIMIT = 45.0
PITCH_LIMIT = 30.0
ROLL_LIMIT = 30.0

# Landmark path scales
_LANDMARK_YAW_SCALE = 60.0
_LANDMARK_PITCH_SCALE = 30.0

# Box path: eyes sit in the upper part of the frame, so pitch is measured
# against a reference 40% down rather than the centre.
_BOX_YAW_SCALE = 60.0
_BOX_PITCH_SCALE = 40.0
_BOX_PITCH_REFERENCE = 0.4
_BOX_ROLL_SCALE = 20.0
_BOX_REFERENCE_ASPECT = 0.75


def _clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


def _clamped_pose(yaw: float, pitch: float, roll: float) -> HeadPose:
    return HeadPose(
        yaw=_clamp(yaw, YAW_LIMIT),
        pitch=_clamp(pitch, PITCH_LIMIT),
        roll=_clamp(roll, ROLL_LIMIT),
    )


class HeadPoseEstimator:
    """Turns a face candidate into a ``HeadPose``.

    Uses the landmark path when the active detector supplied landmarks and
    falls back to bounding-box geometry otherwise.  Either way the result is
    a complete, clamped yaw/pitch/roll triple.
    """

    def estimate(
        self, candidate: FaceCandidate, frame_width: int, frame_height: int
    ) -> HeadPose:
        if candidate.landmarks is not None:
            return self.from_landmarks(candidate.landmarks, frame_width)
        return self.from_bounding_box(candidate.bounding_box, frame_width, frame_height)

    @staticmethod
    def from_landmarks(landmarks: FaceLandmarks, frame_width: int) -> HeadPose:
        nose_x, nose_y = landmarks.nose_tip
        lx, ly = landmarks.left_eye
        rx, ry = landmarks.right_eye
        eye_mid_x = (lx + rx) / 2.0
        eye_mid_y = (ly + ry) / 2.0

        yaw = (nose_x - eye_mid_x) / frame_width * _LANDMARK_YAW_SCALE if frame_width else 0.0

        face_height = abs(landmarks.forehead[1] - landmarks.chin[1])
        if face_height > 1e-6:
            pitch = (nose_y - eye_mid_y) / face_height * _LANDMARK_PITCH_SCALE
        else:
            pitch = 0.0

        roll = math.degrees(math.atan2(ry - ly, rx - lx))

        pose = _clamped_pose(yaw, pitch, roll)
        logger.debug(
            "Landmark pose raw=(%.1f, %.1f, %.1f) clamped=(%.1f, %.1f, %.1f)",
            yaw, pitch, roll, pose.yaw, pose.pitch, pose.roll,
        )
        return pose

    @staticmethod
    def from_bounding_box(box: BoundingBox, frame_width: int, frame_height: int) -> HeadPose:
        cx, cy = box.center
        yaw = (cx / frame_width - 0.5) * _BOX_YAW_SCALE if frame_width else 0.0
        pitch = (
            (cy / frame_height - _BOX_PITCH_REFERENCE) * _BOX_PITCH_SCALE
            if frame_height
            else 0.0
        )
        if box.height > 0:
            roll = (box.width / box.height - _BOX_REFERENCE_ASPECT) * _BOX_ROLL_SCALE
        else:
            roll = 0.0
        return _clamped_pose(yaw, pitch, roll)
