"""Common interface for face detection backends."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np

from domain.models import FaceCandidate

logger = logging.getLogger(__name__)


class DetectorBackend(ABC):
    """One face-localisation strategy.

    :meth:`process` does the actual work synchronously.  :meth:`detect` runs
    it on a single worker thread owned by the backend, so the underlying
    model is only ever used from that one thread and the caller's event loop
    stays responsive.
    """

    name: str = "backend"
    provides_landmarks: bool = False

    def __init__(self, max_faces: int = 5) -> None:
        self.max_faces = max_faces
        self._executor: Optional[ThreadPoolExecutor] = None

    @abstractmethod
    def initialize(self) -> bool:
        """Load models; return ``False`` if this backend cannot be used."""

    @abstractmethod
    def process(self, frame_bgr: np.ndarray) -> list[FaceCandidate]:
        """Detect faces in one BGR frame (H, W, 3)."""

    async def detect(self, frame_bgr: np.ndarray) -> list[FaceCandidate]:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"Detector-{self.name}"
            )
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.process, frame_bgr)

    def close(self) -> None:
        """Release the backend.

        Queued frames are dropped, but a :meth:`process` call already running
        (for example one the caller stopped waiting for after a timeout) is
        allowed to finish before the model is freed.
        """
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None
        self._release()
        logger.debug("Backend %s closed.", self.name)

    def _release(self) -> None:
        """Free model resources. Override when the backend holds any."""
