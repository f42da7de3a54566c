"""Shape recognition module."""
from .shape_classifier import DescriptorConfig, ShapeClassifier, ShapeClassifierConfig

__all__ = ["DescriptorConfig", "ShapeClassifier", "ShapeClassifierConfig"]
