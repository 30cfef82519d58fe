"""
Frame-rate and per-stage latency tracking over rolling windows.

Stages are the pipeline's own steps (normalize, render, activities,
audio, total). A "total" sample longer than the frame budget counts as
an over-budget frame: the hand path could not keep up with the camera.
"""

import time
import threading
import logging
from collections import deque
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DEFAULT_STAGES = ("normalize", "render", "activities", "audio", "total")


class PerformanceMonitor:
    """Tracks FPS and average latency of the pipeline stages.

    The audio stage is measured from the microphone polling path, which may
    run off the frame thread, hence the lock.
    """

    def __init__(self, window_size=100, stages=DEFAULT_STAGES, frame_budget_ms=1000.0 / 30):
        self._window_size = window_size
        self._frame_budget_ms = frame_budget_ms
        self._lock = threading.Lock()

        self._intervals = deque(maxlen=window_size)
        self._samples = {name: deque(maxlen=window_size) for name in stages}
        self._reset_counters()

    def _reset_counters(self):
        self._previous_tick = None
        self._frame_count = 0
        self._over_budget = 0
        self._started_at = time.time()

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    @contextmanager
    def measure(self, stage_name: str):
        """Time the enclosed block as one sample of ``stage_name``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._record(stage_name, (time.perf_counter() - start) * 1000)

    def _record(self, stage_name: str, elapsed_ms: float):
        with self._lock:
            samples = self._samples.get(stage_name)
            if samples is None:
                samples = self._samples[stage_name] = deque(maxlen=self._window_size)
            samples.append(elapsed_ms)
            if stage_name == "total" and elapsed_ms > self._frame_budget_ms:
                self._over_budget += 1

    def tick(self):
        """Call once per animation frame."""
        now = time.perf_counter()
        with self._lock:
            if self._previous_tick is not None:
                self._intervals.append(now - self._previous_tick)
            self._previous_tick = now
            self._frame_count += 1

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def fps(self) -> float:
        with self._lock:
            if len(self._intervals) < 2:
                return 0.0
            mean = sum(self._intervals) / len(self._intervals)
        return 1.0 / mean if mean > 0 else 0.0

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def over_budget_frames(self) -> int:
        """Hand frames whose total processing exceeded the frame budget."""
        return self._over_budget

    def get_stage_latency(self, stage_name: str) -> float:
        """Average latency of a stage in ms, 0 when never measured."""
        return self.get_all_latencies().get(stage_name, 0.0)

    def get_all_latencies(self) -> dict:
        with self._lock:
            return {name: (sum(s) / len(s) if s else 0.0) for name, s in self._samples.items()}

    def get_report(self) -> dict:
        return {
            "fps": round(self.fps, 1),
            "total_frames": self._frame_count,
            "over_budget_frames": self._over_budget,
            "uptime_seconds": round(time.time() - self._started_at, 1),
            "latencies_ms": {k: round(v, 2) for k, v in self.get_all_latencies().items()},
        }

    def print_report(self):
        report = self.get_report()
        logger.info("=" * 60)
        logger.info("PERFORMANCE REPORT")
        logger.info("=" * 60)
        logger.info("FPS:            %.1f", report["fps"])
        logger.info("Frames:         %d (%d over %.1f ms budget)",
                    report["total_frames"], report["over_budget_frames"], self._frame_budget_ms)
        logger.info("Uptime:         %.1fs", report["uptime_seconds"])
        logger.info("-" * 40)
        for stage, latency in report["latencies_ms"].items():
            logger.info("  %-18s %7.2f ms", stage, latency)
        logger.info("=" * 60)

    def reset(self):
        with self._lock:
            self._intervals.clear()
            for samples in self._samples.values():
                samples.clear()
            self._reset_counters()
