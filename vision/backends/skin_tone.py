"""Pixel-heuristic face detector used when no trained model is available.

Every pixel is classified as skin or not by a fixed RGB rule, the resulting
mask is split into 4-connected regions with a stack-based flood fill, and
sufficiently large regions become face candidates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from domain.models import BoundingBox, FaceCandidate
from vision.backends.base import DetectorBackend

logger = logging.getLogger(__name__)

MIN_REGION_AREA = 500   # px, smaller blobs are noise
MIN_FACE_AREA = 1000    # px, smaller regions are not promoted to faces
MAX_CONFIDENCE = 0.9
CONFIDENCE_AREA_SCALE = 10_000.0


@dataclass
class SkinRegion:
    bounding_box: BoundingBox
    area: int


def skin_mask(frame_bgr: np.ndarray) -> np.ndarray:
    """Boolean (H, W) mask of skin-toned pixels."""
    rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB).astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    spread = rgb.max(axis=2) - rgb.min(axis=2)
    return (
        (r > 95) & (g > 40) & (b > 20)
        & (spread > 15)
        & (np.abs(r - g) > 15)
        & (r > g) & (r > b)
    )


def find_regions(mask: np.ndarray, min_area: int = MIN_REGION_AREA) -> list[SkinRegion]:
    """Return the 4-connected regions of *mask* whose area exceeds *min_area*."""
    height, width = mask.shape
    pixels = mask.astype(np.uint8).ravel().tobytes()
    visited = bytearray(width * height)
    regions: list[SkinRegion] = []

    for start in np.flatnonzero(mask.ravel()).tolist():
        if visited[start]:
            continue
        region = _flood_fill(pixels, visited, start, width, height)
        if region.area > min_area:
            regions.append(region)
    return regions


def _flood_fill(
    pixels: bytes, visited: bytearray, start: int, width: int, height: int
) -> SkinRegion:
    stack = [start]
    visited[start] = 1
    min_x = max_x = start % width
    min_y = max_y = start // width
    area = 0

    while stack:
        index = stack.pop()
        y, x = divmod(index, width)
        area += 1
        if x < min_x:
            min_x = x
        elif x > max_x:
            max_x = x
        if y < min_y:
            min_y = y
        elif y > max_y:
            max_y = y

        neighbours = []
        if x + 1 < width:
            neighbours.append(index + 1)
        if x > 0:
            neighbours.append(index - 1)
        if y + 1 < height:
            neighbours.append(index + width)
        if y > 0:
            neighbours.append(index - width)
        for n in neighbours:
            if pixels[n] and not visited[n]:
                visited[n] = 1
                stack.append(n)

    box = BoundingBox(
        x=float(min_x),
        y=float(min_y),
        width=float(max_x - min_x + 1),
        height=float(max_y - min_y + 1),
    )
    return SkinRegion(bounding_box=box, area=area)


class SkinToneBackend(DetectorBackend):
    """Last-resort backend: needs nothing but the frame itself."""

    name = "cv"

    def initialize(self) -> bool:
        logger.info("Skin-tone heuristic detector ready (basic accuracy).")
        return True

    def process(self, frame_bgr: np.ndarray) -> list[FaceCandidate]:
        mask = skin_mask(frame_bgr)
        regions = find_regions(mask)
        logger.debug(
            "Skin mask: %d px (%.1f%%), %d regions",
            int(mask.sum()),
            mask.mean() * 100.0 if mask.size else 0.0,
            len(regions),
        )
        return [
            FaceCandidate(
                bounding_box=region.bounding_box,
                confidence=min(MAX_CONFIDENCE, region.area / CONFIDENCE_AREA_SCALE),
            )
            for region in regions
            if region.area > MIN_FACE_AREA
        ]
