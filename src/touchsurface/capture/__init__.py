"""Synchronized colour + depth capture."""
from .sensor import OpenNISensor, SensorConfig, SensorSource, StillImageSensor

__all__ = ["OpenNISensor", "SensorConfig", "SensorSource", "StillImageSensor"]
