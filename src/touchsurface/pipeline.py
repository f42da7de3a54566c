"""
Pipeline orchestrator for the touch surface.

Per frame:
    SensorFrames -> SpatialMapper (correspondence)
    CALIBRATING: ShapeCandidateDetector -> ShapeClassifier -> pending controls
    RUNNING:     FingertipTracker -> ContactDetector -> contact events
    -> SurfaceRenderer snapshot

One frame is processed at a time. A frame that arrives while another is
still in flight is dropped, not queued.
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .capture.sensor import SensorConfig
from .detection.fingertip_tracker import FingertipTracker
from .events import EventBus, Events
from .interaction.calibration import CalibrationController, CalibrationSummary
from .interaction.contact_detector import ContactDetector
from .mapping.spatial_mapper import SpatialMapper
from .types import (
    ContactEvent, Control, Fingertip, GeometryMismatchError, PipelinePhase, SensorFrames, ShapeCandidate,
)
from .utils.performance import PerformanceMonitor
from .utils.visualization import SurfaceRenderer

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Pipeline behaviour switches."""
    render: bool = True

    @classmethod
    def from_dict(cls, config: dict) -> "PipelineConfig":
        return cls(
            render=config.get("render", True),
        )


@dataclass
class PipelineResult:
    """Result of a single pipeline iteration."""
    phase: PipelinePhase
    frame_number: int = 0
    candidates: List[ShapeCandidate] = field(default_factory=list)
    controls: Tuple[Control, ...] = ()
    fingertip: Optional[Fingertip] = None
    contacts: List[ContactEvent] = field(default_factory=list)
    image: Optional[np.ndarray] = None
    latency_ms: float = 0.0
    samples_saved: int = 0

    @property
    def touched(self) -> bool:
        return bool(self.contacts)


class SurfacePipeline:
    """Frame-in, snapshot-out touch surface pipeline.

    Example:
        >>> pipeline = SurfacePipeline(sensor_config, mapper, calibration, tracker, contact_detector)
        >>> with sensor.acquire() as frames:
        ...     if frames is not None:
        ...         result = pipeline.process(frames)
        >>> pipeline.commit_calibration()
    """

    def __init__(
        self,
        sensor_config: SensorConfig,
        spatial_mapper: SpatialMapper,
        calibration: CalibrationController,
        tracker: FingertipTracker,
        contact_detector: ContactDetector,
        renderer: Optional[SurfaceRenderer] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
        event_bus: Optional[EventBus] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.sensor_config = sensor_config
        self._mapper = spatial_mapper
        self._calibration = calibration
        self._tracker = tracker
        self._contact = contact_detector
        self._renderer = renderer or SurfaceRenderer()
        self._perf = performance_monitor or PerformanceMonitor()
        self._bus = event_bus or EventBus()
        self.config = config or PipelineConfig()

        self._busy = threading.Lock()
        self._owner: Optional[int] = None
        self._commit_deferred = False
        self._frame_count = 0
        self._drop_count = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> PipelinePhase:
        return self._calibration.phase

    @property
    def controls(self) -> Tuple[Control, ...]:
        return self._calibration.controls

    @property
    def calibration(self) -> CalibrationController:
        return self._calibration

    @property
    def performance(self) -> PerformanceMonitor:
        return self._perf

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def drop_count(self) -> int:
        return self._drop_count

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def process(self, frames: SensorFrames) -> Optional[PipelineResult]:
        """Run one frame through the pipeline.

        Returns:
            PipelineResult, or None if the frame was dropped because
            another one is still being processed

        Raises:
            GeometryMismatchError: frame sizes differ from the sensor geometry
        """
        if not self._busy.acquire(blocking=False):
            self._drop_count += 1
            self._perf.record_drop()
            logger.debug("Frame %d dropped, pipeline busy", frames.frame_number)
            self._bus.emit(Events.FRAME_DROPPED, frame_number=frames.frame_number)
            return None
        self._owner = threading.get_ident()
        try:
            return self._process(frames)
        finally:
            self._release()

    def commit_calibration(self) -> Optional[CalibrationSummary]:
        """Operator trigger. Waits for any in-flight frame, then freezes the controls.

        Called from the thread that is processing a frame (an event handler,
        say), the commit is deferred until that frame is finished and None
        is returned; the outcome is published as ``calibration_committed``.
        """
        if self._owner == threading.get_ident():
            logger.debug("Calibration commit requested mid-frame; applying after the frame")
            self._commit_deferred = True
            return None

        self._busy.acquire()
        self._owner = threading.get_ident()
        try:
            return self._calibration.commit()
        finally:
            self._release()

    def _release(self) -> None:
        self._owner = None
        deferred, self._commit_deferred = self._commit_deferred, False
        self._busy.release()
        if deferred:
            self.commit_calibration()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def validate(self, frames: SensorFrames) -> None:
        """Check frame geometry against the configured sensor.

        Raises:
            GeometryMismatchError: on any size or layout mismatch
        """
        cw, ch = self.sensor_config.color_size
        dw, dh = self.sensor_config.depth_size

        color = frames.color
        if color is None or color.ndim != 3 or color.shape != (ch, cw, 4):
            raise GeometryMismatchError(
                "Colour frame shape %s does not match configured (%d, %d, 4)"
                % (None if color is None else color.shape, ch, cw))

        depth = frames.depth
        if depth is None or depth.shape != (dh, dw):
            raise GeometryMismatchError(
                "Depth frame shape %s does not match configured (%d, %d)"
                % (None if depth is None else depth.shape, dh, dw))

    def _process(self, frames: SensorFrames) -> PipelineResult:
        self.validate(frames)
        self._perf.frame_start()
        self._frame_count += 1

        result = PipelineResult(phase=self.phase, frame_number=frames.frame_number)

        with self._perf.measure("mapping"):
            correspondence = self._mapper.build_correspondence(
                frames.depth, frames.min_reliable_depth, frames.max_reliable_depth)

        unclassified: List[ShapeCandidate] = []
        if result.phase is PipelinePhase.CALIBRATING:
            with self._perf.measure("detection"):
                candidates, edges = self._calibration.detect(frames.color)
            with self._perf.measure("classification"):
                calibration_frame = self._calibration.update(candidates, edges, correspondence)
            result.candidates = calibration_frame.candidates
            result.controls = calibration_frame.controls
            result.samples_saved = calibration_frame.samples_saved
            unclassified = calibration_frame.unclassified
        else:
            result.controls = self._calibration.controls

            with self._perf.measure("tracking"):
                fingertip = self._tracker.track(frames.color)
                if fingertip is not None:
                    sample = self._mapper.sample_fingertip_depth(correspondence, fingertip)
                    if not sample.is_empty:
                        fingertip = dataclasses.replace(fingertip, depth=sample.mean)
                    self._bus.emit(Events.FINGERTIP_TRACKED, fingertip=fingertip)
            result.fingertip = fingertip

            with self._perf.measure("contact"):
                result.contacts = self._contact.detect(fingertip, result.controls, correspondence)

            for event in result.contacts:
                self._bus.emit(Events.CONTACT, event=event)

        if self.config.render:
            result.image = self._renderer.render(
                frames.color,
                result.phase,
                candidates=unclassified,
                controls=result.controls,
                fingertip=result.fingertip,
                contacts=result.contacts,
                fps=self._perf.fps,
                extra_info={"Dropped": self._drop_count} if self._drop_count else None,
            )

        result.latency_ms = self._perf.frame_complete(result.phase)
        return result
