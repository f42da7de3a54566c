"""
Calibration state machine.

CALIBRATING: every frame re-detects and re-classifies shapes and replaces
the pending control set (no accumulation across frames).
RUNNING: the pending set from the last calibration frame has been
committed as the live control set and stays frozen for the session.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from ..data.sample_collector import ShapeSampleWriter
from ..detection.shape_detector import ShapeCandidateDetector
from ..events import EventBus, Events
from ..mapping.spatial_mapper import CorrespondenceMap, SpatialMapper
from ..recognition.shape_classifier import ShapeClassifier
from ..types import Control, ControlType, PipelinePhase, ShapeCandidate

logger = logging.getLogger(__name__)


@dataclass
class CalibrationFrame:
    """What one calibration frame produced."""
    candidates: List[ShapeCandidate] = field(default_factory=list)
    # Candidates drawn as plain outlines: no model loaded, or sample capture
    unclassified: List[ShapeCandidate] = field(default_factory=list)
    controls: Tuple[Control, ...] = ()
    samples_saved: int = 0


@dataclass(frozen=True)
class CalibrationSummary:
    """Per-type counts of the committed controls."""
    squares: int = 0
    circles: int = 0
    sliders: int = 0

    @property
    def total(self) -> int:
        return self.squares + self.circles + self.sliders

    @classmethod
    def of(cls, controls) -> "CalibrationSummary":
        counts = {control_type: 0 for control_type in ControlType}
        for control in controls:
            counts[control.control_type] += 1
        return cls(
            squares=counts[ControlType.SQUARE],
            circles=counts[ControlType.CIRCLE],
            sliders=counts[ControlType.SLIDER],
        )

    def __str__(self):
        return "Squares: %d, Circles: %d, Sliders: %d" % (self.squares, self.circles, self.sliders)


class CalibrationController:
    """
    Two-phase controller owning the control set.

    Example:
        >>> controller = CalibrationController(detector, classifier, mapper)
        >>> controller.calibrate_frame(frames.color, correspondence)  # many frames
        >>> summary = controller.commit()  # operator trigger
        >>> controller.controls  # frozen from here on
    """

    def __init__(self, detector: ShapeCandidateDetector, classifier: ShapeClassifier,
                 spatial_mapper: SpatialMapper, sample_writer: Optional[ShapeSampleWriter] = None,
                 event_bus: Optional[EventBus] = None):
        self._detector = detector
        self._classifier = classifier
        self._mapper = spatial_mapper
        self._sample_writer = sample_writer
        self._bus = event_bus or EventBus()

        self._lock = threading.Lock()
        self._phase = PipelinePhase.CALIBRATING
        self._pending: Tuple[Control, ...] = ()
        self._controls: Tuple[Control, ...] = ()

    @property
    def phase(self) -> PipelinePhase:
        return self._phase

    @property
    def is_calibrating(self) -> bool:
        return self._phase is PipelinePhase.CALIBRATING

    @property
    def controls(self) -> Tuple[Control, ...]:
        """Live control set: empty until commit, frozen after."""
        return self._controls

    @property
    def pending_controls(self) -> Tuple[Control, ...]:
        """Controls found on the most recent calibration frame."""
        return self._pending

    def detect(self, color: np.ndarray) -> Tuple[List[ShapeCandidate], np.ndarray]:
        """Shape candidates of a colour frame and the edge map they came from."""
        return self._detector.detect(color)

    def calibrate_frame(self, color: np.ndarray,
                        correspondence: Optional[CorrespondenceMap]) -> CalibrationFrame:
        """Detect and classify in one step."""
        candidates, edges = self.detect(color)
        return self.update(candidates, edges, correspondence)

    def update(self, candidates: List[ShapeCandidate], edges: np.ndarray,
               correspondence: Optional[CorrespondenceMap]) -> CalibrationFrame:
        """Classify this frame's candidates and replace the pending set.

        Raises:
            RuntimeError: called after the calibration was committed
        """
        with self._lock:
            if self._phase is not PipelinePhase.CALIBRATING:
                raise RuntimeError("Controls are frozen once calibration is committed")

            result = CalibrationFrame(candidates=list(candidates))

            if self._sample_writer is not None and self._sample_writer.enabled:
                result.samples_saved = self._sample_writer.save_all(candidates, edges, self._classifier)
                result.unclassified = list(candidates)
            elif not self._classifier.is_available:
                result.unclassified = list(candidates)
            else:
                controls = []
                for candidate in candidates:
                    control_type = self._classifier.classify(candidate, edges)
                    if control_type is None:
                        continue
                    controls.append(Control(
                        control_type=control_type,
                        bounds=candidate.bounds,
                        reference_depth=self._reference_depth(correspondence, candidate),
                    ))
                result.controls = tuple(controls)

            self._pending = result.controls

        self._bus.emit(Events.CONTROLS_DETECTED, controls=result.controls,
                       candidates=result.candidates)
        return result

    def _reference_depth(self, correspondence: Optional[CorrespondenceMap],
                         candidate: ShapeCandidate) -> Optional[float]:
        if correspondence is None:
            return None
        sample = self._mapper.average_depth(correspondence, candidate.bounds)
        return None if sample.is_empty else sample.mean

    def commit(self) -> CalibrationSummary:
        """Operator trigger: freeze the latest pending set and start running."""
        with self._lock:
            if self._phase is PipelinePhase.RUNNING:
                logger.warning("Calibration already committed; ignoring trigger")
                return CalibrationSummary.of(self._controls)

            self._controls = self._pending
            self._phase = PipelinePhase.RUNNING
            summary = CalibrationSummary.of(self._controls)

        logger.info("Shapes calibrated. %s", summary)
        self._bus.emit(Events.CALIBRATION_COMMITTED, controls=self._controls, summary=summary)
        return summary
