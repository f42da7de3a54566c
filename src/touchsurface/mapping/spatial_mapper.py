"""
Colour/Depth Spatial Mapping
=============================

Builds, for every colour pixel, the depth-space pixel it corresponds to and
samples depth under colour-space boxes.

Scratch buffers come from a pool sized once from the sensor geometry and
are reused by slot index, so a steady-state frame allocates nothing large.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..types import BoundingBox, Control, DepthSample, Fingertip, GeometryMismatchError
from ..utils.logger import log_timing

logger = logging.getLogger(__name__)

UNMAPPED = -1


@dataclass
class MappingConfig:
    """Spatial mapping settings."""
    pool_slots: int = 2
    # Registered mapper: depth pixels reading 0 are sensor shadow
    zero_depth_is_shadow: bool = True

    @classmethod
    def from_dict(cls, config: dict) -> "MappingConfig":
        return cls(
            pool_slots=config.get("pool_slots", 2),
            zero_depth_is_shadow=config.get("zero_depth_is_shadow", True),
        )


class CoordinateMapper:
    """
    Device-specific colour-to-depth mapping.

    ``map_color_to_depth`` fills ``out`` (colour H x W x 2, float32) with the
    depth-space (x, y) of every colour pixel, using -inf where the device
    reports no correspondence.
    """

    def map_color_to_depth(self, depth: np.ndarray, out: np.ndarray) -> np.ndarray:
        raise NotImplementedError


class RegisteredCoordinateMapper(CoordinateMapper):
    """Mapper for streams the driver has already registered to each other.

    Colour and depth share a viewpoint, so the correspondence is a pure
    resolution rescale. Depth shadows (zero readings) have no correspondence.
    """

    def __init__(self, color_size: Tuple[int, int], depth_size: Tuple[int, int],
                 zero_depth_is_shadow: bool = True):
        self.color_size = color_size
        self.depth_size = depth_size
        self.zero_depth_is_shadow = zero_depth_is_shadow

        cw, ch = color_size
        dw, dh = depth_size
        xs = (np.arange(cw, dtype=np.float32) + 0.5) * (dw / float(cw)) - 0.5
        ys = (np.arange(ch, dtype=np.float32) + 0.5) * (dh / float(ch)) - 0.5
        grid = np.empty((ch, cw, 2), dtype=np.float32)
        grid[..., 0] = xs[np.newaxis, :]
        grid[..., 1] = ys[:, np.newaxis]
        self._grid = grid

        # Nearest depth pixel for each colour pixel, for shadow lookup
        self._nearest_x = np.clip(np.floor(xs + 0.5).astype(np.intp), 0, dw - 1)
        self._nearest_y = np.clip(np.floor(ys + 0.5).astype(np.intp), 0, dh - 1)

    def map_color_to_depth(self, depth: np.ndarray, out: np.ndarray) -> np.ndarray:
        np.copyto(out, self._grid)
        if self.zero_depth_is_shadow:
            shadow = depth[np.ix_(self._nearest_y, self._nearest_x)] == 0
            out[shadow] = -np.inf
        return out


class _PoolSlot:
    __slots__ = ("points", "depth_x", "depth_y", "valid")

    def __init__(self, color_size: Tuple[int, int]):
        width, height = color_size
        n = width * height
        self.points = np.empty((height, width, 2), dtype=np.float32)
        self.depth_x = np.empty(n, dtype=np.int32)
        self.depth_y = np.empty(n, dtype=np.int32)
        self.valid = np.empty(n, dtype=bool)


class FrameBufferPool:
    """Fixed set of per-frame scratch buffers, handed out round-robin by index.

    A buffer handed out by ``next_slot()`` stays untouched until
    ``len(pool)`` further slots have been taken.
    """

    def __init__(self, color_size: Tuple[int, int], slots: int = 2):
        if slots < 1:
            raise ValueError("Buffer pool needs at least one slot")
        self._slots = [_PoolSlot(color_size) for _ in range(slots)]
        self._next = 0
        logger.debug("Allocated %d mapping buffers for %dx%d colour frames",
                     slots, color_size[0], color_size[1])

    def __len__(self):
        return len(self._slots)

    def next_slot(self) -> Tuple[int, _PoolSlot]:
        index = self._next
        self._next = (self._next + 1) % len(self._slots)
        return index, self._slots[index]


@dataclass(frozen=True)
class CorrespondenceMap:
    """Per-colour-pixel depth coordinates for one frame.

    ``depth_x``/``depth_y`` hold ``UNMAPPED`` where ``valid`` is False.
    Arrays are flat, row-major over the colour image.
    """
    depth_x: np.ndarray
    depth_y: np.ndarray
    valid: np.ndarray
    depth: np.ndarray
    color_size: Tuple[int, int]
    min_reliable_depth: int = 0
    max_reliable_depth: int = np.iinfo(np.uint16).max
    slot: int = 0

    def __len__(self):
        return len(self.valid)

    @property
    def mapped_count(self) -> int:
        return int(np.count_nonzero(self.valid))


class SpatialMapper:
    """
    Colour-to-depth correspondence and depth sampling.

    Example:
        >>> mapper = SpatialMapper(sensor_config)
        >>> correspondence = mapper.build_correspondence(frames.depth)
        >>> sample = mapper.average_depth(correspondence, control.bounds)
        >>> if not sample.is_empty:
        ...     print(sample.mean)
    """

    def __init__(self, color_size: Tuple[int, int], depth_size: Tuple[int, int],
                 coordinate_mapper: Optional[CoordinateMapper] = None,
                 config: Optional[MappingConfig] = None):
        self.config = config or MappingConfig()
        self.color_size = tuple(color_size)
        self.depth_size = tuple(depth_size)
        self.coordinate_mapper = coordinate_mapper or RegisteredCoordinateMapper(
            self.color_size, self.depth_size, self.config.zero_depth_is_shadow)
        self._pool = FrameBufferPool(self.color_size, self.config.pool_slots)

    @log_timing
    def build_correspondence(self, depth: np.ndarray, min_reliable_depth: int = 0,
                             max_reliable_depth: int = np.iinfo(np.uint16).max) -> CorrespondenceMap:
        """Map every colour pixel to a depth pixel for this depth frame.

        Raises:
            GeometryMismatchError: depth frame is not the configured size,
                or the coordinate mapper produced a wrongly sized result
        """
        cw, ch = self.color_size
        dw, dh = self.depth_size

        if depth is None or depth.ndim != 2 or depth.shape != (dh, dw):
            raise GeometryMismatchError(
                "Depth frame shape %s does not match configured %dx%d"
                % (None if depth is None else depth.shape, dw, dh))

        slot_index, slot = self._pool.next_slot()
        points = self.coordinate_mapper.map_color_to_depth(depth, slot.points)
        if points.shape != (ch, cw, 2):
            raise GeometryMismatchError(
                "Coordinate mapper returned %s, expected (%d, %d, 2)" % (points.shape, ch, cw))

        px = points[..., 0].reshape(-1)
        py = points[..., 1].reshape(-1)
        finite = np.isfinite(px) & np.isfinite(py)

        # Round to nearest pixel; non-finite entries are parked at -1 first
        dx = np.floor(np.where(finite, px, -1.0) + 0.5)
        dy = np.floor(np.where(finite, py, -1.0) + 0.5)

        np.logical_and(finite, (dx >= 0) & (dx < dw) & (dy >= 0) & (dy < dh), out=slot.valid)
        np.copyto(slot.depth_x, np.where(slot.valid, dx, UNMAPPED).astype(np.int32))
        np.copyto(slot.depth_y, np.where(slot.valid, dy, UNMAPPED).astype(np.int32))

        return CorrespondenceMap(
            depth_x=slot.depth_x,
            depth_y=slot.depth_y,
            valid=slot.valid,
            depth=depth,
            color_size=self.color_size,
            min_reliable_depth=min_reliable_depth,
            max_reliable_depth=max_reliable_depth,
            slot=slot_index,
        )

    @staticmethod
    def average_depth(correspondence: CorrespondenceMap, box: BoundingBox) -> DepthSample:
        """Mean depth under a colour-space box.

        Only colour pixels inside the box with a mapped, in-range depth
        reading contribute. ``count == 0`` means there is no usable depth.
        """
        width, height = correspondence.color_size
        clipped = BoundingBox(*box).clip(width, height)
        if clipped.area == 0:
            return DepthSample(0.0, 0)

        rows = slice(clipped.y, clipped.bottom)
        cols = slice(clipped.x, clipped.right)
        valid = correspondence.valid.reshape(height, width)[rows, cols]
        if not valid.any():
            return DepthSample(0.0, 0)

        xs = correspondence.depth_x.reshape(height, width)[rows, cols][valid]
        ys = correspondence.depth_y.reshape(height, width)[rows, cols][valid]
        values = correspondence.depth[ys, xs]

        reliable = (values > 0) \
            & (values >= correspondence.min_reliable_depth) \
            & (values <= correspondence.max_reliable_depth)
        count = int(np.count_nonzero(reliable))
        if count == 0:
            return DepthSample(0.0, 0)

        return DepthSample(float(values[reliable].mean(dtype=np.float64)), count)

    def sample_control_depth(self, correspondence: CorrespondenceMap, control: Control) -> DepthSample:
        """Depth under a registered control."""
        return self.average_depth(correspondence, control.bounds)

    def sample_fingertip_depth(self, correspondence: CorrespondenceMap, fingertip: Fingertip) -> DepthSample:
        """Depth under the fingertip box."""
        return self.average_depth(correspondence, fingertip.bounds)
