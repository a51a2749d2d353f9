"""Bounded-rate frame scheduler driving the detection pipeline.

Runs cooperatively on the asyncio event loop.  A periodic tick (the stand-in
for a display-refresh callback) decides whether to process the current frame:

* a tick while a previous frame is still being analysed is a no-op;
* a tick before the video source has a fresh frame is a no-op and does not
  use up the processing slot;
* a tick that arrives sooner than ``process_interval_ms`` after the last
  processed frame is skipped, never queued, so stale frames are dropped.

Results are applied only if the session is still enabled and was not reset
while the frame was in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from domain.metrics import StatisticsAggregator
from domain.models import DetectedFace, FrameDetectionResult, RollingStats
from vision.camera import FrameSource
from vision.pipeline import FaceAnalysisService

logger = logging.getLogger(__name__)


class FrameScheduler:
    def __init__(
        self,
        service: FaceAnalysisService,
        aggregator: StatisticsAggregator,
        source: Optional[FrameSource] = None,
        process_interval_ms: float = 150.0,
        tick_interval_ms: float = 16.0,
        clock: Callable[[], float] = time.monotonic,
        on_faces_detected: Optional[Callable[[list[DetectedFace]], None]] = None,
        on_eye_contact_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.service = service
        self.aggregator = aggregator
        self.source = source
        self.process_interval_ms = process_interval_ms
        self.tick_interval_ms = tick_interval_ms
        self.on_faces_detected = on_faces_detected
        self.on_eye_contact_change = on_eye_contact_change
        self._clock = clock

        self.enabled = False
        self.frames_processed = 0
        self.frames_skipped = 0
        self.last_result = FrameDetectionResult.empty()

        self._busy = False
        self._generation = 0
        self._last_process_time: Optional[float] = None
        self._last_frame_index: Optional[int] = None
        self._last_eye_contact = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None  # task running analysis
        self._tick_tasks: set[asyncio.Task] = set()
        self._release_pending = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin ticking.  Must be called from a running event loop."""
        if self.enabled:
            return True
        if not self.service.detector.is_initialized:
            logger.error("Scheduler not started: face detector is not initialised.")
            return False
        if self.source is None:
            logger.error("Scheduler not started: no video source.")
            return False

        self._loop = asyncio.get_running_loop()
        # The previous session's deferred close must not hit this session's detector
        self._release_pending = False
        self.enabled = True
        self._generation += 1
        self._last_process_time = None
        self._schedule_tick()
        logger.info(
            "Frame scheduler started (interval=%.0f ms, tick=%.0f ms).",
            self.process_interval_ms,
            self.tick_interval_ms,
        )
        return True

    def stop(self) -> None:
        """Stop ticking and release the detector.

        An in-flight analysis is left to finish; its result is discarded and
        the detector is closed once it completes, unless :meth:`start` is
        called again first.
        """
        was_enabled = self.enabled
        self.enabled = False
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        if self._task is not None and not self._task.done():
            self._release_pending = True
            self._task.add_done_callback(self._deferred_release)
        else:
            self._release_pending = False
            self._release()
        if was_enabled:
            logger.info(
                "Frame scheduler stopped (processed=%d skipped=%d).",
                self.frames_processed,
                self.frames_skipped,
            )

    def reset_stats(self) -> None:
        """Clear statistics; any frame currently in flight will not be counted."""
        self._generation += 1
        self.aggregator.reset()

    @property
    def is_running(self) -> bool:
        return self.enabled and self._handle is not None

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def stats(self) -> RollingStats:
        return self.aggregator.snapshot()

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    async def tick(self) -> bool:
        """Run one scheduling step; return ``True`` if a frame was processed."""
        if not self.enabled or self._busy:
            return False

        source = self.source
        if source is None or not source.is_ready:
            return False

        now = self._clock()
        if (
            self._last_process_time is not None
            and (now - self._last_process_time) * 1000.0 < self.process_interval_ms
        ):
            self.frames_skipped += 1
            return False

        frame = source.read()
        if frame is None or frame.index == self._last_frame_index:
            # No new frame since the last one we analysed
            return False

        self._busy = True
        self._task = asyncio.current_task()
        self._last_process_time = now
        self._last_frame_index = frame.index
        generation = self._generation
        try:
            result = await self.service.analyze(frame.image)
        except Exception:
            logger.exception("Unexpected error analysing frame %d.", frame.index)
            result = FrameDetectionResult.empty()
        finally:
            self._busy = False
            self._task = None

        if not self.enabled or generation != self._generation:
            logger.debug("Discarding result for frame %d (session changed).", frame.index)
            return False

        self._apply(result)
        return True

    def _schedule_tick(self) -> None:
        assert self._loop is not None
        self._handle = self._loop.call_later(self.tick_interval_ms / 1000.0, self._on_tick)

    def _on_tick(self) -> None:
        self._handle = None
        if not self.enabled:
            return
        self._schedule_tick()
        if self._busy:
            return
        task = self._loop.create_task(self.tick())  # type: ignore[union-attr]
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_done)

    def _tick_done(self, task: asyncio.Task) -> None:
        self._tick_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Tick failed.", exc_info=task.exception())

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _apply(self, result: FrameDetectionResult) -> None:
        self.frames_processed += 1
        self.last_result = result
        self.aggregator.ingest(result)

        if result.faces and self.on_faces_detected:
            try:
                self.on_faces_detected(list(result.faces))
            except Exception:
                logger.exception("on_faces_detected callback failed.")

        if result.eye_contact_detected != self._last_eye_contact:
            self._last_eye_contact = result.eye_contact_detected
            if self.on_eye_contact_change:
                try:
                    self.on_eye_contact_change(result.eye_contact_detected)
                except Exception:
                    logger.exception("on_eye_contact_change callback failed.")

    def _deferred_release(self, _task: asyncio.Task) -> None:
        if not self._release_pending:
            logger.debug("Deferred detector release no longer pending; skipping.")
            return
        self._release_pending = False
        self._release()

    def _release(self) -> None:
        self.service.detector.close()
