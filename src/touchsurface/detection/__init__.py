"""Shape candidate and fingertip detection."""
from .shape_detector import ShapeCandidateDetector, ShapeDetectorConfig
from .fingertip_tracker import FingertipTracker, FingertipTrackerConfig

__all__ = ["ShapeCandidateDetector", "ShapeDetectorConfig", "FingertipTracker", "FingertipTrackerConfig"]
