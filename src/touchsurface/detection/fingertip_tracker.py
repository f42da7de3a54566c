"""
Fingertip Tracking
===================

Finds round blobs in the colour frame and picks the fingertip among them.

Selection policy: the blob with the largest size wins, ties going to the
first one found. Circularity only gates which blobs qualify; it does not
rank them. Close to the sensor a large round region is more likely the
real finger than small round clutter.
"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from ..types import BoundingBox, Fingertip
from .shape_detector import to_gray

logger = logging.getLogger(__name__)


@dataclass
class FingertipTrackerConfig:
    """Blob filter settings."""
    min_circularity: float = 0.85
    max_circularity: float = 1.0
    min_area: float = 30.0
    max_area: float = 5000.0
    # SimpleBlobDetector looks for dark blobs (0) or light blobs (255)
    blob_color: int = 0
    filter_by_color: bool = True

    @classmethod
    def from_dict(cls, config: dict) -> "FingertipTrackerConfig":
        return cls(
            min_circularity=config.get("min_circularity", 0.85),
            max_circularity=config.get("max_circularity", 1.0),
            min_area=config.get("min_area", 30.0),
            max_area=config.get("max_area", 5000.0),
            blob_color=config.get("blob_color", 0),
            filter_by_color=config.get("filter_by_color", True),
        )


def fingertip_box(center, size: float) -> BoundingBox:
    """Square of side ``size * sqrt(2)`` centred on the blob.

    The side circumscribes the blob's circle instead of inscribing it.
    """
    side = int(size * math.sqrt(2))
    cx, cy = center
    return BoundingBox(int(cx - side / 2.0), int(cy - side / 2.0), side, side)


class FingertipTracker:
    """
    Circular-blob fingertip detector.

    Example:
        >>> tracker = FingertipTracker()
        >>> fingertip = tracker.track(frames.color)
        >>> if fingertip is not None:
        ...     print(fingertip.center, fingertip.bounds)
    """

    def __init__(self, config: Optional[FingertipTrackerConfig] = None):
        self.config = config or FingertipTrackerConfig()
        self._detector = cv2.SimpleBlobDetector_create(self._build_params())

    def _build_params(self) -> "cv2.SimpleBlobDetector_Params":
        params = cv2.SimpleBlobDetector_Params()
        params.filterByCircularity = True
        params.minCircularity = float(self.config.min_circularity)
        params.maxCircularity = float(self.config.max_circularity)
        params.filterByArea = True
        params.minArea = float(self.config.min_area)
        params.maxArea = float(self.config.max_area)
        params.filterByColor = self.config.filter_by_color
        params.blobColor = int(self.config.blob_color)
        return params

    def detect_blobs(self, color: np.ndarray) -> List[cv2.KeyPoint]:
        """All blobs that pass the circularity and area filters."""
        return list(self._detector.detect(to_gray(color)))

    @staticmethod
    def select_largest(keypoints: List[cv2.KeyPoint]) -> Optional[cv2.KeyPoint]:
        """Largest keypoint; the first one found wins ties."""
        best = None
        for keypoint in keypoints:
            if best is None or keypoint.size > best.size:
                best = keypoint
        return best

    def track(self, color: np.ndarray) -> Optional[Fingertip]:
        """Fingertip for this frame, or None if no blob qualifies."""
        keypoints = self.detect_blobs(color)
        best = self.select_largest(keypoints)
        if best is None:
            return None

        center = (float(best.pt[0]), float(best.pt[1]))
        fingertip = Fingertip(
            center=center,
            size=float(best.size),
            bounds=fingertip_box(center, best.size),
        )
        logger.debug("Fingertip at (%.1f, %.1f), size %.1f from %d blobs",
                     center[0], center[1], best.size, len(keypoints))
        return fingertip
