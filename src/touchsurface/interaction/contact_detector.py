"""
Contact Detection
==================

Decides whether the fingertip is touching a control. A 2D overlap only
says the finger is somewhere above the control; the depth under the
fingertip must also be within ``threshold_mm`` of the depth under the
control before a contact is reported.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..mapping.spatial_mapper import CorrespondenceMap, SpatialMapper
from ..types import ContactEvent, Control, Fingertip

logger = logging.getLogger(__name__)


@dataclass
class ContactDetectorConfig:
    """Contact test settings."""
    # Larger values accept hovering fingers; smaller values miss light touches
    threshold_mm: float = 15.0

    @classmethod
    def from_dict(cls, config: dict) -> "ContactDetectorConfig":
        return cls(threshold_mm=float(config.get("threshold_mm", 15.0)))


class ContactDetector:
    """
    Geometric + depth contact test between the fingertip and controls.

    Example:
        >>> detector = ContactDetector(spatial_mapper, ContactDetectorConfig(threshold_mm=10))
        >>> for event in detector.detect(fingertip, controls, correspondence):
        ...     print(event.control_index, event.difference)
    """

    def __init__(self, spatial_mapper: SpatialMapper, config: Optional[ContactDetectorConfig] = None):
        self.config = config or ContactDetectorConfig()
        self._mapper = spatial_mapper

    @property
    def threshold_mm(self) -> float:
        return self.config.threshold_mm

    @threshold_mm.setter
    def threshold_mm(self, value: float):
        if value <= 0:
            raise ValueError("Contact threshold must be positive, got %r" % value)
        self.config.threshold_mm = float(value)

    def detect(self, fingertip: Optional[Fingertip], controls: Sequence[Control],
               correspondence: CorrespondenceMap) -> List[ContactEvent]:
        """Contact events for this frame, at most one per control."""
        if fingertip is None or not controls:
            return []

        overlapping = [(i, c) for i, c in enumerate(controls) if c.bounds.intersects(fingertip.bounds)]
        if not overlapping:
            return []

        finger_sample = self._mapper.sample_fingertip_depth(correspondence, fingertip)
        if finger_sample.is_empty:
            logger.debug("No depth under fingertip %r, skipping contact test", fingertip.bounds)
            return []

        events = []
        for index, control in overlapping:
            control_sample = self._mapper.sample_control_depth(correspondence, control)
            if control_sample.is_empty:
                logger.debug("No depth under control %d, skipping", index)
                continue

            difference = finger_sample.mean - control_sample.mean
            if abs(difference) < self.config.threshold_mm:
                events.append(ContactEvent(control_index=index, control=control, difference=difference))
            else:
                logger.debug("Control %d overlapped but depth differs by %.1f mm", index, difference)

        return events
