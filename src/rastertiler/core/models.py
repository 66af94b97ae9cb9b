"""Dataclasses describing tile pyramid geometry and raster windows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

P = TypeVar("P")


@dataclass(frozen=True)
class Point2D:
    """A point in a planar space: projected meters, pixels or tile indices."""

    x: float
    y: float


@dataclass(frozen=True)
class Geographic2D:
    """A WGS84 position in decimal degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class BoundingBox(Generic[P]):
    """Axis-aligned box spanned by two corner points."""

    min: P
    max: P

    def contains(self, x: float, y: float) -> bool:
        """Return True when ``(x, y)`` lies inside the box, edges included."""

        return self.min.x <= x <= self.max.x and self.min.y <= y <= self.max.y

    def contains_point(self, point: P) -> bool:
        return self.contains(point.x, point.y)


@dataclass(frozen=True)
class GeoExtent:
    """Pixel rectangle: offset and size."""

    x: int
    y: int
    xsize: int
    ysize: int

    @property
    def empty(self) -> bool:
        return self.xsize <= 0 or self.ysize <= 0


@dataclass(frozen=True)
class GQResult:
    """Result of a geo-query.

    ``r`` is the window to read from the source raster, ``w`` the window of
    the output tile canvas that receives the pixels.
    """

    r: GeoExtent
    w: GeoExtent


@dataclass(frozen=True)
class BandStatistics:
    """Summary statistics for a single raster band."""

    minimum: float
    maximum: float
    mean: Optional[float] = None
    stddev: Optional[float] = None


@dataclass(frozen=True)
class RasterDimensions:
    width: int
    height: int
    bands: int
