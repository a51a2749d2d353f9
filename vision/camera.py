"""Video frame sources: the protocol the scheduler reads from and a webcam adapter."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    image: np.ndarray   # BGR (H, W, 3)
    timestamp: float    # time.monotonic() at capture
    index: int          # capture sequence number


class FrameSource(Protocol):
    """Anything that can hand the scheduler its latest frame."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def is_ready(self) -> bool: ...

    def read(self) -> Optional[Frame]: ...


class Camera:
    """Grabs frames from a webcam in a background thread so the pipeline
    never blocks on I/O.  Call :meth:`read` to retrieve the latest captured
    frame without waiting."""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480) -> None:
        self.index = index
        self._requested = (width, height)
        self._cap: Optional[cv2.VideoCapture] = None
        self._frame: Optional[np.ndarray] = None
        self._timestamp: float = 0.0
        self._count: int = 0
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._width: int = 0
        self._height: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._cap = cv2.VideoCapture(self.index)
        if not self._cap.isOpened():
            raise RuntimeError(f"Cannot open camera at index {self.index}.")

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._requested[0])
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._requested[1])

        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, daemon=True, name="CameraCapture")
        self._thread.start()
        logger.info("Camera started: index=%d  res=%dx%d", self.index, self._width, self._height)

    def stop(self) -> None:
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap:
            self._cap.release()
            self._cap = None
        logger.info("Camera stopped.")

    # ------------------------------------------------------------------
    # FrameSource
    # ------------------------------------------------------------------

    def read(self) -> Optional[Frame]:
        """Return a copy of the latest frame, or ``None`` before the first one."""
        with self._lock:
            if self._frame is None:
                return None
            return Frame(self._frame.copy(), self._timestamp, self._count)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._frame is not None

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _capture_loop(self) -> None:
        assert self._cap is not None
        while self._running:
            ret, frame = self._cap.read()
            if ret:
                ts = time.monotonic()
                with self._lock:
                    self._frame = frame
                    self._timestamp = ts
                    self._count += 1
            else:
                time.sleep(0.005)
