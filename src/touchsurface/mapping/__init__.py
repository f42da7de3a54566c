"""Colour/depth spatial mapping."""
from .spatial_mapper import (
    UNMAPPED,
    CoordinateMapper,
    CorrespondenceMap,
    FrameBufferPool,
    MappingConfig,
    RegisteredCoordinateMapper,
    SpatialMapper,
)

__all__ = [
    "UNMAPPED",
    "CoordinateMapper",
    "CorrespondenceMap",
    "FrameBufferPool",
    "MappingConfig",
    "RegisteredCoordinateMapper",
    "SpatialMapper",
]
