"""Utility modules for configuration, logging, performance and visualization."""
from .performance import PerformanceMonitor
from .visualization import SurfaceRenderer, depth_to_display

__all__ = ["PerformanceMonitor", "SurfaceRenderer", "depth_to_display"]
