"""Training data collection."""
from .sample_collector import ShapeSampleWriter

__all__ = ["ShapeSampleWriter"]
