"""
Depth Sensor Capture Module
============================

Synchronized colour + depth acquisition. Frame bundles are handed out
through a scoped ``acquire()`` so that whatever the driver allocated for a
cycle is released on every exit path, including cycles with missing frames.
"""

import time
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from ..types import SensorFrames

logger = logging.getLogger(__name__)


@dataclass
class SensorConfig:
    """Sensor geometry and acquisition settings."""
    device_id: int = 0
    color_width: int = 640
    color_height: int = 480
    depth_width: int = 640
    depth_height: int = 480
    min_reliable_depth: int = 500      # mm
    max_reliable_depth: int = 4500     # mm
    registration: bool = True          # ask the driver to align depth to colour
    require_body_index: bool = False
    warmup_frames: int = 5

    @classmethod
    def from_dict(cls, config: dict) -> "SensorConfig":
        """Create config from dictionary (YAML parsed)."""
        return cls(
            device_id=config.get("device_id", 0),
            color_width=config.get("color_width", 640),
            color_height=config.get("color_height", 480),
            depth_width=config.get("depth_width", 640),
            depth_height=config.get("depth_height", 480),
            min_reliable_depth=config.get("min_reliable_depth", 500),
            max_reliable_depth=config.get("max_reliable_depth", 4500),
            registration=config.get("registration", True),
            require_body_index=config.get("require_body_index", False),
            warmup_frames=config.get("warmup_frames", 5),
        )

    @property
    def color_size(self) -> Tuple[int, int]:
        return (self.color_width, self.color_height)

    @property
    def depth_size(self) -> Tuple[int, int]:
        return (self.depth_width, self.depth_height)


class SensorSource:
    """
    Base class for anything that delivers synchronized frame bundles.

    Subclasses implement ``_read_frames()`` and, if they hold per-cycle
    resources, ``_release()``.

    Example:
        >>> with StillImageSensor("table.png") as sensor:
        ...     with sensor.acquire() as frames:
        ...         if frames is not None:
        ...             pipeline.process(frames)
    """

    def __init__(self, config: Optional[SensorConfig] = None):
        self.config = config or SensorConfig()
        self._running = False
        self._frame_number = 0
        self._lock = threading.Lock()

    def start(self) -> bool:
        self._running = True
        self._frame_number = 0
        return True

    def stop(self) -> None:
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def geometry(self) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """((colour w, h), (depth w, h)), queried once at startup."""
        return (self.config.color_size, self.config.depth_size)

    @contextmanager
    def acquire(self):
        """Yield this cycle's SensorFrames, or None if any required frame is missing.

        Only one bundle is outstanding at a time; the bundle is released
        when the ``with`` block exits, however it exits.
        """
        frames = None
        with self._lock:
            try:
                if self._running:
                    frames = self._read_frames()
                if frames is not None and self.config.require_body_index and frames.body_index is None:
                    logger.debug("Body index frame missing, skipping cycle")
                    self._release(frames)
                    frames = None
                yield frames
            finally:
                if frames is not None:
                    self._release(frames)

    def _next_frame_number(self) -> int:
        self._frame_number += 1
        return self._frame_number

    def _read_frames(self) -> Optional[SensorFrames]:
        raise NotImplementedError

    def _release(self, frames: SensorFrames) -> None:
        """Return per-cycle resources to the driver (no-op by default)."""

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False


class OpenNISensor(SensorSource):
    """
    Structured-light / ToF sensor read through OpenCV's OpenNI2 backend.

    With registration enabled the driver aligns depth to the colour image,
    so a ``RegisteredCoordinateMapper`` is the matching mapper.
    """

    def __init__(self, config: Optional[SensorConfig] = None):
        super().__init__(config)
        self._cap: Optional[cv2.VideoCapture] = None

    def start(self) -> bool:
        logger.info("Starting OpenNI sensor (device=%d, colour %dx%d, depth %dx%d)",
                    self.config.device_id, self.config.color_width, self.config.color_height,
                    self.config.depth_width, self.config.depth_height)

        self._cap = cv2.VideoCapture(cv2.CAP_OPENNI2 + self.config.device_id)
        if not self._cap.isOpened():
            logger.error("Failed to open OpenNI device %d", self.config.device_id)
            self._cap = None
            return False

        if self.config.registration:
            self._cap.set(cv2.CAP_PROP_OPENNI_REGISTRATION, 1)

        if self.config.require_body_index:
            logger.warning("OpenNI does not provide body index frames; every cycle will be skipped")

        for _ in range(self.config.warmup_frames):
            self._cap.grab()

        return super().start()

    def stop(self) -> None:
        super().stop()
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        logger.info("OpenNI sensor stopped")

    def _read_frames(self) -> Optional[SensorFrames]:
        if self._cap is None or not self._cap.grab():
            return None

        ok_depth, depth = self._cap.retrieve(flag=cv2.CAP_OPENNI_DEPTH_MAP)
        ok_color, bgr = self._cap.retrieve(flag=cv2.CAP_OPENNI_BGR_IMAGE)
        if not ok_depth or not ok_color or depth is None or bgr is None:
            logger.debug("Incomplete OpenNI capture, skipping cycle")
            return None

        return SensorFrames(
            color=cv2.cvtColor(bgr, cv2.COLOR_BGR2BGRA),
            depth=depth.astype(np.uint16, copy=False),
            timestamp=time.time(),
            frame_number=self._next_frame_number(),
            min_reliable_depth=self.config.min_reliable_depth,
            max_reliable_depth=self.config.max_reliable_depth,
        )


class StillImageSensor(SensorSource):
    """
    Replays one colour image with a flat synthetic depth plane.

    Used when no device is attached, so shape calibration can be tried on
    a screenshot of the surface.
    """

    def __init__(self, image_path: str, config: Optional[SensorConfig] = None,
                 plane_depth: int = 1000):
        super().__init__(config)
        self.image_path = image_path
        self.plane_depth = plane_depth
        self._color: Optional[np.ndarray] = None
        self._depth: Optional[np.ndarray] = None

    def start(self) -> bool:
        image = cv2.imread(self.image_path, cv2.IMREAD_UNCHANGED)
        if image is None:
            logger.error("Could not open still image %s", self.image_path)
            return False

        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
        elif image.shape[2] == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)

        height, width = image.shape[:2]
        # The still image defines the geometry; depth is registered 1:1.
        self.config.color_width = self.config.depth_width = width
        self.config.color_height = self.config.depth_height = height

        self._color = image
        self._color.setflags(write=False)
        self._depth = np.full((height, width), self.plane_depth, dtype=np.uint16)
        self._depth.setflags(write=False)
        logger.info("Still image sensor: %s (%dx%d, plane at %d mm)",
                    self.image_path, width, height, self.plane_depth)
        return super().start()

    def _read_frames(self) -> Optional[SensorFrames]:
        if self._color is None:
            return None
        return SensorFrames(
            color=self._color,
            depth=self._depth,
            timestamp=time.time(),
            frame_number=self._next_frame_number(),
            min_reliable_depth=self.config.min_reliable_depth,
            max_reliable_depth=self.config.max_reliable_depth,
        )
