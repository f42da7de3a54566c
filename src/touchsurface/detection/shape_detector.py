"""
Shape Candidate Detection
==========================

Finds closed polygonal outlines in the colour frame that could be surface
controls. Canny thresholds follow the frame's own mean intensity, so the
detector adapts to the room lighting without tuning.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np

from ..types import BoundingBox, ShapeCandidate

logger = logging.getLogger(__name__)

_RETRIEVAL_MODES = {
    "external": cv2.RETR_EXTERNAL,
    "list": cv2.RETR_LIST,
}


@dataclass
class ShapeDetectorConfig:
    """Shape candidate detector settings."""
    blur_kernel: int = 5
    blur_sigma: float = 0.0
    low_threshold_ratio: float = 0.5    # x mean intensity
    high_threshold_ratio: float = 1.2   # x mean intensity
    l2_gradient: bool = True
    epsilon_ratio: float = 0.01         # x contour arc length
    min_vertices: int = 4
    max_vertices: int = 19
    min_size: int = 20
    retrieval: str = "list"
    twin_margin: int = 10               # px per side, see _drop_twins

    @classmethod
    def from_dict(cls, config: dict) -> "ShapeDetectorConfig":
        """Create config from dictionary."""
        return cls(
            blur_kernel=config.get("blur_kernel", 5),
            blur_sigma=config.get("blur_sigma", 0.0),
            low_threshold_ratio=config.get("low_threshold_ratio", 0.5),
            high_threshold_ratio=config.get("high_threshold_ratio", 1.2),
            l2_gradient=config.get("l2_gradient", True),
            epsilon_ratio=config.get("epsilon_ratio", 0.01),
            min_vertices=config.get("min_vertices", 4),
            max_vertices=config.get("max_vertices", 19),
            min_size=config.get("min_size", 20),
            retrieval=config.get("retrieval", "list"),
            twin_margin=config.get("twin_margin", 10),
        )


def to_gray(image: np.ndarray) -> np.ndarray:
    """Single-channel intensity from a BGRA, BGR or already grey image."""
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image[..., 0]


def _is_twin(inner: BoundingBox, outer: BoundingBox, margin: int) -> bool:
    """True if ``inner`` sits inside ``outer`` with every side within ``margin`` px."""
    return (0 <= inner.x - outer.x <= margin
            and 0 <= inner.y - outer.y <= margin
            and 0 <= outer.right - inner.right <= margin
            and 0 <= outer.bottom - inner.bottom <= margin)


def _drop_twins(candidates: List[ShapeCandidate], margin: int) -> List[ShapeCandidate]:
    """Collapse the nested rings that one printed outline leaves in an edge map.

    A Canny line has an inner and an outer border and a thick stroke gives
    two lines, so one outline yields up to four contours a few pixels apart.
    Only the outermost is kept. Shapes nested further in (controls on a
    sheet, a knob on a slider track) are kept as they are.
    """
    kept = []
    for i, candidate in enumerate(candidates):
        box = candidate.bounds
        twin = False
        for j, other in enumerate(candidates):
            if j == i:
                continue
            larger = other.bounds.area > box.area or (other.bounds.area == box.area and j < i)
            if larger and _is_twin(box, other.bounds, margin):
                twin = True
                break
        if not twin:
            kept.append(candidate)
    return kept


class ShapeCandidateDetector:
    """
    Edge-based polygon candidate detector.

    Steps: grey -> Gaussian blur -> Canny (thresholds from mean intensity)
    -> all closed contours -> approxPolyDP -> vertex count and size filter
    -> collapse twin rings of the same outline.

    Example:
        >>> detector = ShapeCandidateDetector()
        >>> candidates, edges = detector.detect(frames.color)
        >>> for candidate in candidates:
        ...     print(candidate.vertex_count, candidate.bounds)
    """

    def __init__(self, config: Optional[ShapeDetectorConfig] = None):
        self.config = config or ShapeDetectorConfig()
        if self.config.retrieval not in _RETRIEVAL_MODES:
            logger.warning("Unknown contour retrieval '%s', using 'list'", self.config.retrieval)
            self.config.retrieval = "list"

    def edge_map(self, color: np.ndarray) -> np.ndarray:
        """Adaptive Canny edge map of the frame."""
        gray = to_gray(color)
        mean = float(np.mean(gray))

        k = self.config.blur_kernel
        if k > 1:
            k = k if k % 2 == 1 else k + 1
            gray = cv2.GaussianBlur(gray, (k, k), self.config.blur_sigma)

        low = self.config.low_threshold_ratio * mean
        high = self.config.high_threshold_ratio * mean
        return cv2.Canny(gray, low, high, apertureSize=3, L2gradient=self.config.l2_gradient)

    def detect(self, color: np.ndarray) -> Tuple[List[ShapeCandidate], np.ndarray]:
        """Detect candidates and also return the edge map they came from.

        The edge map is what the shape classifier crops its patches from.
        """
        edges = self.edge_map(color)
        contours, _ = cv2.findContours(
            edges,
            _RETRIEVAL_MODES[self.config.retrieval],
            cv2.CHAIN_APPROX_SIMPLE,
        )

        candidates = []
        for contour in contours:
            epsilon = self.config.epsilon_ratio * cv2.arcLength(contour, True)
            poly = cv2.approxPolyDP(contour, epsilon, True)

            if not (self.config.min_vertices <= len(poly) <= self.config.max_vertices):
                continue

            x, y, w, h = cv2.boundingRect(poly)
            if w < self.config.min_size or h < self.config.min_size:
                continue

            candidates.append(ShapeCandidate(
                polygon=poly.reshape(-1, 2).astype(np.int32),
                bounds=BoundingBox(x, y, w, h),
            ))

        shapes = _drop_twins(candidates, self.config.twin_margin)
        logger.debug("Shape candidates: %d of %d contours (%d twin rings merged)",
                     len(shapes), len(contours), len(candidates) - len(shapes))
        return shapes, edges

    def detect_candidates(self, color: np.ndarray) -> List[ShapeCandidate]:
        """Shape candidates in contour-scan order."""
        candidates, _ = self.detect(color)
        return candidates
