"""Calibration and contact detection."""
from .calibration import CalibrationController, CalibrationFrame, CalibrationSummary
from .contact_detector import ContactDetector, ContactDetectorConfig

__all__ = [
    "CalibrationController",
    "CalibrationFrame",
    "CalibrationSummary",
    "ContactDetector",
    "ContactDetectorConfig",
]
