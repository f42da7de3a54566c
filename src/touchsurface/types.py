"""
Shared domain types for the touch surface system.

Centralizes enums, data classes, and type definitions used across modules
to eliminate circular imports and ensure type consistency.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class GeometryMismatchError(ValueError):
    """Frame or buffer geometry disagrees with the configured sensor geometry."""


# =============================================================================
# Enums
# =============================================================================

class ControlType(Enum):
    """Closed set of control shapes. Values match the classifier labels."""
    SQUARE = 0
    CIRCLE = 1
    SLIDER = 2

    @classmethod
    def from_label(cls, label: int) -> Optional["ControlType"]:
        """Map a raw classifier output to a ControlType, or None if unknown."""
        try:
            return cls(int(label))
        except ValueError:
            return None


class PipelinePhase(Enum):
    """Calibration runs until the operator commits; then the pipeline runs."""
    CALIBRATING = "calibrating"
    RUNNING = "running"


# =============================================================================
# Geometry
# =============================================================================

class BoundingBox(tuple):
    """Axis-aligned box (x, y, width, height) in colour-image pixels."""

    __slots__ = ()

    def __new__(cls, x: int, y: int, width: int, height: int):
        return super().__new__(cls, (int(x), int(y), int(width), int(height)))

    @property
    def x(self) -> int:
        return self[0]

    @property
    def y(self) -> int:
        return self[1]

    @property
    def width(self) -> int:
        return self[2]

    @property
    def height(self) -> int:
        return self[3]

    @property
    def right(self) -> int:
        return self[0] + self[2]

    @property
    def bottom(self) -> int:
        return self[1] + self[3]

    @property
    def area(self) -> int:
        return max(0, self[2]) * max(0, self[3])

    def intersects(self, other: "BoundingBox") -> bool:
        """True only for a positive-area overlap; shared edges do not count."""
        return (
            min(self.right, other.right) > max(self.x, other.x)
            and min(self.bottom, other.bottom) > max(self.y, other.y)
        )

    def inflate(self, dx: int, dy: int) -> "BoundingBox":
        """Grow by dx/dy on every side."""
        return BoundingBox(self.x - dx, self.y - dy, self.width + 2 * dx, self.height + 2 * dy)

    def clip(self, width: int, height: int) -> "BoundingBox":
        """Intersect with an image of the given size."""
        x1 = min(max(self.x, 0), width)
        y1 = min(max(self.y, 0), height)
        x2 = min(max(self.right, 0), width)
        y2 = min(max(self.bottom, 0), height)
        return BoundingBox(x1, y1, x2 - x1, y2 - y1)

    def __repr__(self):
        return "BoundingBox(x=%d, y=%d, w=%d, h=%d)" % tuple(self)


# =============================================================================
# Data Containers
# =============================================================================

@dataclass(frozen=True)
class SensorFrames:
    """One synchronized capture: colour, depth and optionally body index.

    The pipeline never mutates these arrays, it only derives data from them.
    """
    color: np.ndarray                    # (H, W, 4) uint8 BGRA
    depth: np.ndarray                    # (h, w) uint16 millimetres
    timestamp: float = field(default_factory=time.time)
    frame_number: int = 0
    min_reliable_depth: int = 500
    max_reliable_depth: int = 4500
    body_index: Optional[np.ndarray] = None  # (h, w) uint8, 0xFF = no body

    @property
    def color_size(self) -> Tuple[int, int]:
        """(width, height) of the colour image."""
        return (self.color.shape[1], self.color.shape[0])

    @property
    def depth_size(self) -> Tuple[int, int]:
        """(width, height) of the depth image."""
        return (self.depth.shape[1], self.depth.shape[0])


@dataclass(frozen=True)
class ShapeCandidate:
    """Polygon approximation of a closed contour and its bounding box."""
    polygon: np.ndarray                  # (N, 2) int32, contour order
    bounds: BoundingBox

    @property
    def vertex_count(self) -> int:
        return len(self.polygon)


@dataclass(frozen=True)
class Control:
    """A classified, registered region on the surface."""
    control_type: ControlType
    bounds: BoundingBox
    reference_depth: Optional[float] = None

    def __repr__(self):
        depth = "n/a" if self.reference_depth is None else "%.1f" % self.reference_depth
        return "Control(%s, %r, depth=%s)" % (self.control_type.name.lower(), self.bounds, depth)


@dataclass(frozen=True)
class Fingertip:
    """Per-frame fingertip detection. No identity is kept across frames."""
    center: Tuple[float, float]
    size: float
    bounds: BoundingBox
    depth: Optional[float] = None


@dataclass(frozen=True)
class DepthSample:
    """Mean depth under a box and the number of pixels that contributed."""
    mean: float
    count: int

    @property
    def is_empty(self) -> bool:
        return self.count == 0


@dataclass(frozen=True)
class ContactEvent:
    """The fingertip is touching the control at ``control_index`` this frame."""
    control_index: int
    control: Control
    difference: float
    timestamp: float = field(default_factory=time.time)
