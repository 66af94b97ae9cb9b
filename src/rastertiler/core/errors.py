"""Exception hierarchy shared by the tiling components."""

from __future__ import annotations


class TilerError(RuntimeError):
    """Base class for every error raised while producing tiles."""


class ConfigurationError(TilerError):
    """Raised for invalid tiler settings or a degenerate raster layout.

    Covers a missing input path, a tile size that is not a power of two,
    unsupported output formats or sample types and a zero pixel size.
    """


class GeoreferenceError(TilerError):
    """Raised when the raster has no usable spatial reference."""


class OutOfBoundsError(TilerError):
    """Raised when a requested tile does not overlap the raster.

    Only the single ``tile()`` call fails; batch callers may skip the tile.
    """


class RasterIOError(TilerError):
    """Raised when opening, reading or encoding raster data fails."""


class RescaleError(TilerError):
    """Raised when samples cannot be mapped onto the 8-bit output range."""
