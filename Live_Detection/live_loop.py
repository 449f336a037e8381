"""
Live capture loop: acquire frame -> infer -> decode/suppress/map -> publish -> wait.

Only one frame is in flight at a time. Frames offered while one is being
processed are dropped rather than queued, so the loop always works on the
freshest frame. Each capture is bounded by a timeout; a stalled capture is
skipped, never waited on twice.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from detkit.catalog import ClassCatalog
from detkit.mapping import InputTransform
from detkit.runtime import DetectionPipeline, InferFn, PreparedFrame
from detkit.types import Detection

from .config import SettingsStore

logger = logging.getLogger(__name__)

FrameSource = Callable[[], Optional[PreparedFrame]]
PipelineFn = Callable[[PreparedFrame], List[Detection]]


@dataclass(frozen=True)
class FrameResult:
    frame_index: int
    detections: Tuple[Detection, ...]
    transform: InputTransform
    latency_seconds: float


class FpsMeter:
    """
    Counts processed frames and reports a rate once per window.
    """

    def __init__(self, window_seconds: float = 1.0, clock: Callable[[], float] = time.monotonic):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._window = window_seconds
        self._clock = clock
        self._start = clock()
        self._count = 0
        self.fps: Optional[float] = None

    def tick(self) -> Optional[float]:
        self._count += 1
        now = self._clock()
        elapsed = now - self._start
        if elapsed < self._window:
            return None
        self.fps = self._count / elapsed
        self._count = 0
        self._start = now
        return self.fps


def build_pipeline(
    infer_fn: InferFn, settings: SettingsStore, catalog: Optional[ClassCatalog] = None
) -> DetectionPipeline:
    """
    Pipeline whose thresholds are read from `settings` on every frame.
    """

    return DetectionPipeline(
        infer_fn,
        catalog=catalog,
        config_provider=lambda: settings.get().to_postprocess_config(),
    )


class LiveDetectionLoop:
    def __init__(
        self,
        source: FrameSource,
        pipeline: PipelineFn,
        settings: SettingsStore,
        on_result: Optional[Callable[[FrameResult], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._pipeline = pipeline
        self._settings = settings
        self._on_result = on_result
        self._clock = clock

        self._in_flight = threading.Lock()
        self._stats_lock = threading.Lock()
        self._capture_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="frame-capture")
        self._pending: Optional[Future] = None

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self.frames_processed = 0
        self.dropped_frames = 0
        self.fps = FpsMeter(clock=clock)

    # ------------------------------------------------------------------ #
    # Single frame
    # ------------------------------------------------------------------ #
    def process(self, frame: PreparedFrame) -> Optional[FrameResult]:
        """
        Run one frame through the pipeline. Returns None, without waiting, when
        another frame is still being processed.
        """

        if not self._in_flight.acquire(blocking=False):
            with self._stats_lock:
                self.dropped_frames += 1
            logger.debug("Frame dropped: previous frame still in flight")
            return None

        try:
            started = self._clock()
            detections = self._pipeline(frame)
            with self._stats_lock:
                self.frames_processed += 1
                index = self.frames_processed
            result = FrameResult(
                frame_index=index,
                detections=tuple(detections),
                transform=frame.transform,
                latency_seconds=self._clock() - started,
            )
        finally:
            self._in_flight.release()

        fps = self.fps.tick()
        if fps is not None:
            logger.info("%.1f FPS, %d detections", fps, len(result.detections))

        if self._on_result is not None:
            self._on_result(result)
        return result

    def acquire(self) -> Optional[PreparedFrame]:
        """
        Ask the source for a frame, waiting at most `capture_timeout_seconds`.
        """

        if self._pending is not None and not self._pending.done():
            logger.debug("Previous capture still running; skipping cycle")
            return None

        timeout = self._settings.get().capture_timeout_seconds
        self._pending = self._capture_pool.submit(self._source)
        try:
            frame = self._pending.result(timeout=timeout)
        except FutureTimeout:
            logger.debug("Frame capture timed out after %.2fs", timeout)
            return None
        self._pending = None
        return frame

    def run_cycle(self) -> Optional[FrameResult]:
        self._settings.reload_if_changed()
        frame = self.acquire()
        if frame is None:
            return None
        return self.process(frame)

    # ------------------------------------------------------------------ #
    # Loop control
    # ------------------------------------------------------------------ #
    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Cycle until `stop_event` is set. The event is checked between cycles;
        a cycle in progress always completes.
        """

        stop = stop_event if stop_event is not None else self._stop_event
        logger.info("Detection loop started")
        while not stop.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Detection cycle failed")
            stop.wait(self._settings.get().cycle_delay_seconds)
        logger.info(
            "Detection loop stopped: %d frames processed, %d dropped",
            self.frames_processed,
            self.dropped_frames,
        )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Detection loop already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="live-detection", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                # handle kept: start() must not launch a second loop beside this one
                logger.warning("Detection loop did not stop within %.1fs", timeout)
                return
        self._thread = None

    def close(self) -> None:
        self.stop()
        self._capture_pool.shutdown(wait=False, cancel_futures=True)
