"""Core data models and errors for rastertiler."""

from .errors import (
    ConfigurationError,
    GeoreferenceError,
    OutOfBoundsError,
    RasterIOError,
    RescaleError,
    TilerError,
)
from .models import (
    BandStatistics,
    BoundingBox,
    GeoExtent,
    Geographic2D,
    GQResult,
    Point2D,
    RasterDimensions,
)

__all__ = [
    "BandStatistics",
    "BoundingBox",
    "ConfigurationError",
    "GeoExtent",
    "Geographic2D",
    "GeoreferenceError",
    "GQResult",
    "OutOfBoundsError",
    "Point2D",
    "RasterDimensions",
    "RasterIOError",
    "RescaleError",
    "TilerError",
]
