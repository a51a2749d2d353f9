"""Draw detected faces and session statistics onto a BGR frame."""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from domain.metrics import summarize_faces
from domain.models import DetectedFace, RollingStats

# BGR
CONTACT_COLOUR = (129, 185, 16)    # green
NO_CONTACT_COLOUR = (68, 68, 239)  # red
TEXT_COLOUR = (255, 255, 255)

_FONT = cv2.FONT_HERSHEY_SIMPLEX
_LINE_H = 18
_PAD = 6


def box_colour(face: DetectedFace) -> tuple[int, int, int]:
    return CONTACT_COLOUR if face.eye_contact else NO_CONTACT_COLOUR


def draw_faces(
    surface: np.ndarray,
    faces: list[DetectedFace],
    frame_size: tuple[int, int],
    eye_contact_percentage: Optional[float] = None,
    show_head_pose: bool = False,
) -> np.ndarray:
    """Draw every face onto *surface* (modified in place and returned).

    Boxes are in source-frame pixels; *frame_size* ``(width, height)`` is used
    to scale them to the surface's own dimensions.
    """
    frame_w, frame_h = frame_size
    surf_h, surf_w = surface.shape[:2]
    if frame_w <= 0 or frame_h <= 0:
        return surface
    sx, sy = surf_w / frame_w, surf_h / frame_h

    for face in faces:
        box = face.bounding_box.scaled(sx, sy)
        x0, y0 = int(round(box.x)), int(round(box.y))
        x1, y1 = int(round(box.x + box.width)), int(round(box.y + box.height))
        colour = box_colour(face)

        cv2.rectangle(surface, (x0, y0), (x1, y1), colour, 3)

        lines = [f"{face.label} {'[EYE]' if face.eye_contact else '[--]'}"]
        if eye_contact_percentage is not None:
            lines.append(f"Eye Contact: {eye_contact_percentage:.0f}%")
        if show_head_pose:
            lines.append(f"Yaw: {face.head_pose.yaw:.1f}")
            lines.append(f"Pitch: {face.head_pose.pitch:.1f}")

        # Label strip above the box (pushed inside the surface if needed)
        text_w = max(cv2.getTextSize(t, _FONT, 0.45, 1)[0][0] for t in lines)
        strip_h = len(lines) * _LINE_H + _PAD
        strip_y = max(0, y0 - strip_h - 5)
        cv2.rectangle(
            surface, (x0, strip_y), (x0 + text_w + 2 * _PAD, strip_y + strip_h), colour, -1
        )
        for i, text in enumerate(lines):
            cv2.putText(
                surface, text, (x0 + _PAD, strip_y + (i + 1) * _LINE_H - 2),
                _FONT, 0.45, TEXT_COLOUR, 1, cv2.LINE_AA,
            )

        cv2.putText(
            surface, f"{face.confidence * 100:.0f}%", (x0 + _PAD, y1 + 15),
            _FONT, 0.4, colour, 1, cv2.LINE_AA,
        )

        if face.eye_contact:
            cv2.circle(surface, (x1 - 15, y0 + 15), 8, CONTACT_COLOUR, -1)

    return surface


def draw_stats_panel(surface: np.ndarray, stats: RollingStats) -> np.ndarray:
    """Top-right panel with the rolling percentage, frame counters and face count."""
    faces = summarize_faces(list(stats.current_faces))
    lines = [
        f"Eye contact: {stats.eye_contact_percentage:.1f}%",
        f"Confidence:  {stats.average_confidence * 100:.0f}%",
        f"Good frames: {stats.eye_contact_frames}",
        f"Total:       {stats.total_frames_processed}",
        f"Faces: {faces['total_faces']}  looking: {faces['eye_contact_count']}",
    ]
    panel_w = 200
    panel_x = max(0, surface.shape[1] - panel_w - 10)
    panel_h = len(lines) * _LINE_H + 2 * _PAD

    # Semi-transparent background
    region = surface[10:10 + panel_h, panel_x:panel_x + panel_w]
    region[:] = (region * 0.4).astype(surface.dtype)

    colour = CONTACT_COLOUR if stats.is_eye_contact_active else TEXT_COLOUR
    for i, text in enumerate(lines):
        cv2.putText(
            surface, text, (panel_x + _PAD, 10 + _PAD + (i + 1) * _LINE_H - 4),
            _FONT, 0.45, colour if i == 0 else TEXT_COLOUR, 1, cv2.LINE_AA,
        )
    return surface
