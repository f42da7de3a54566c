"""
Performance Monitoring Module
==============================

Rolling frame rate, per-stage latency and drop counts for the surface
pipeline. Stages are the pipeline steps named in ``PIPELINE_STAGES``;
a stage that did not run in a frame (tracking while calibrating, say)
simply contributes no sample.
"""

import time
import logging
import threading
from collections import Counter, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)

PIPELINE_STAGES = ("mapping", "detection", "classification", "tracking", "contact")


class StageStats:
    """Rolling window of durations (seconds) for one stage."""

    def __init__(self, window_size: int):
        self._samples: deque = deque(maxlen=window_size)
        self.count = 0
        self.worst = 0.0

    def add(self, seconds: float) -> None:
        self._samples.append(seconds)
        self.count += 1
        self.worst = max(self.worst, seconds)

    @property
    def mean(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)


@dataclass
class PerformanceMetrics:
    """Snapshot of pipeline timing."""
    fps: float = 0.0
    frame_time_ms: float = 0.0
    stage_times_ms: Dict[str, float] = field(default_factory=dict)
    stage_worst_ms: Dict[str, float] = field(default_factory=dict)
    frames_by_phase: Dict[str, int] = field(default_factory=dict)
    total_frames: int = 0
    dropped_frames: int = 0


class PerformanceMonitor:
    """
    Tracks frame rate, per-stage latency and dropped frames.

    Example:
        >>> monitor = PerformanceMonitor()
        >>> monitor.frame_start()
        >>> with monitor.measure("mapping"):
        ...     correspondence = mapper.build_correspondence(depth)
        >>> monitor.frame_complete(PipelinePhase.RUNNING)
    """

    def __init__(self, window_size: int = 30):
        self.window_size = window_size
        self._lock = threading.Lock()
        self._frame_start: Optional[float] = None
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._frames = StageStats(self.window_size)
            self._stages: Dict[str, StageStats] = {}
            self._phases: Counter = Counter()
            self._dropped_frames = 0

    def frame_start(self) -> None:
        self._frame_start = time.perf_counter()

    def frame_complete(self, phase=None) -> float:
        """Mark the frame finished. Returns its duration in milliseconds.

        ``phase`` is the PipelinePhase the frame ran in, if known.
        """
        if self._frame_start is None:
            return 0.0
        seconds = time.perf_counter() - self._frame_start
        self._frame_start = None
        with self._lock:
            self._frames.add(seconds)
            if phase is not None:
                self._phases[phase.name.lower()] += 1
        return seconds * 1000

    def record_drop(self) -> None:
        """Count a frame that arrived while another was being processed."""
        with self._lock:
            self._dropped_frames += 1

    @contextmanager
    def measure(self, stage: str):
        """Time one pipeline stage, recorded even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            seconds = time.perf_counter() - start
            with self._lock:
                if stage not in self._stages:
                    self._stages[stage] = StageStats(self.window_size)
                self._stages[stage].add(seconds)

    @property
    def fps(self) -> float:
        with self._lock:
            mean = self._frames.mean
        return 1.0 / mean if mean > 0 else 0.0

    @property
    def frame_time_ms(self) -> float:
        with self._lock:
            return self._frames.mean * 1000

    def stage_time_ms(self, stage: str) -> float:
        with self._lock:
            stats = self._stages.get(stage)
            return stats.mean * 1000 if stats else 0.0

    def stage_worst_ms(self, stage: str) -> float:
        with self._lock:
            stats = self._stages.get(stage)
            return stats.worst * 1000 if stats else 0.0

    @property
    def total_frames(self) -> int:
        return self._frames.count

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    def get_metrics(self) -> PerformanceMetrics:
        return PerformanceMetrics(
            fps=self.fps,
            frame_time_ms=self.frame_time_ms,
            stage_times_ms={stage: self.stage_time_ms(stage) for stage in PIPELINE_STAGES},
            stage_worst_ms={stage: self.stage_worst_ms(stage) for stage in PIPELINE_STAGES},
            frames_by_phase=dict(self._phases),
            total_frames=self.total_frames,
            dropped_frames=self._dropped_frames,
        )

    def get_report(self) -> str:
        metrics = self.get_metrics()
        lines = [
            "FPS %.1f, %.1fms per frame" % (metrics.fps, metrics.frame_time_ms),
            "%-16s %9s %9s" % ("Stage", "mean ms", "worst ms"),
        ]
        for stage in PIPELINE_STAGES:
            lines.append("%-16s %9.2f %9.2f" % (
                stage.capitalize(), metrics.stage_times_ms[stage], metrics.stage_worst_ms[stage]))
        phases = ", ".join("%d %s" % (n, name) for name, n in sorted(metrics.frames_by_phase.items()))
        lines.append("Frames: %d processed, %d dropped%s" % (
            metrics.total_frames, metrics.dropped_frames, " (%s)" % phases if phases else ""))
        return "\n".join(lines) + "\n"
