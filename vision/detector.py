"""Multi-strategy face detector with a fixed tier fallback."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from domain.models import FaceCandidate
from vision.backends.base import DetectorBackend
from vision.backends.landmark import LandmarkBackend
from vision.backends.native import NativeBackend
from vision.backends.skin_tone import SkinToneBackend

logger = logging.getLogger(__name__)


def default_backends(
    max_faces: int = 5, model_path: Optional[Path] = None
) -> list[DetectorBackend]:
    """The three tiers in preference order: landmarks, native boxes, skin heuristic."""
    return [
        LandmarkBackend(max_faces=max_faces, model_path=model_path),
        NativeBackend(max_faces=max_faces),
        SkinToneBackend(max_faces=max_faces),
    ]


class MultiStrategyDetector:
    """Picks the best available backend once and uses it for the whole session.

    There is no re-selection after :meth:`initialize`; a session that wants a
    different backend must :meth:`close` and initialize again.
    """

    def __init__(
        self,
        backends: Optional[Sequence[DetectorBackend]] = None,
        max_faces: int = 5,
        timeout_ms: float = 1000.0,
    ) -> None:
        self._candidates = list(backends) if backends is not None else default_backends(max_faces)
        self.max_faces = max_faces
        self.timeout_ms = timeout_ms
        self._backend: Optional[DetectorBackend] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        if self._backend is not None:
            return True

        for backend in self._candidates:
            try:
                ok = backend.initialize()
            except Exception:
                logger.exception("Backend %s raised during initialisation.", backend.name)
                ok = False
            if ok:
                self._backend = backend
                logger.info("Face detection using backend '%s'.", backend.name)
                return True
            logger.info("Backend '%s' unavailable, trying next.", backend.name)

        logger.error("No face detection backend could be initialised.")
        return False

    def close(self) -> None:
        if self._backend is None:
            return
        backend, self._backend = self._backend, None
        try:
            backend.close()
        except Exception as exc:
            logger.warning("Error while releasing backend %s: %s", backend.name, exc)
        logger.info("Face detector closed.")

    @property
    def is_initialized(self) -> bool:
        return self._backend is not None

    @property
    def backend_name(self) -> Optional[str]:
        return self._backend.name if self._backend else None

    @property
    def provides_landmarks(self) -> bool:
        return bool(self._backend and self._backend.provides_landmarks)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def detect(self, frame_bgr: np.ndarray) -> list[FaceCandidate]:
        """Return face candidates for one frame; never raises."""
        backend = self._backend
        if backend is None:
            return []
        try:
            candidates = await asyncio.wait_for(
                backend.detect(frame_bgr), timeout=self.timeout_ms / 1000.0
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Backend %s timed out after %.0f ms; treating as no faces.",
                backend.name,
                self.timeout_ms,
            )
            return []
        except Exception:
            logger.exception("Face detection failed on backend %s.", backend.name)
            return []

        if len(candidates) > self.max_faces:
            candidates = sorted(candidates, key=lambda c: c.confidence, reverse=True)
            candidates = candidates[: self.max_faces]
        return candidates
