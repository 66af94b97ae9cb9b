"""Tile addressing shared by raster tile producers."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from rastertiler.core.errors import ConfigurationError
from rastertiler.core.models import BoundingBox, Point2D
from rastertiler.logging import get_logger

from .mercator import GlobalMercator

LOGGER = get_logger(__name__)

TILE_EXTENSIONS = {
    "png": "png",
    "webp": "webp",
}


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


class Tiler:
    """Map a raster's projected extent onto the web mercator tile pyramid.

    Subclasses fill in :attr:`bounds`, :attr:`min_zoom` and :attr:`max_zoom`
    once they know the raster geometry.
    """

    def __init__(
        self,
        input_path: Path | str,
        output_path: Path | str,
        tile_size: int = 256,
        tms: bool = False,
        tile_format: str = "png",
    ) -> None:
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        if not self.input_path.exists():
            raise ConfigurationError(f"{self.input_path} does not exist")
        if not isinstance(tile_size, int) or not is_power_of_two(tile_size):
            raise ConfigurationError("Tile size must be a power of 2 greater than 0")
        fmt = tile_format.lower()
        if fmt not in TILE_EXTENSIONS:
            raise ConfigurationError(f"Unsupported tile format: {tile_format}")

        self.tile_size = tile_size
        self.tms = tms
        self.tile_format = fmt
        self.mercator = GlobalMercator(tile_size)

        self.bounds: Optional[BoundingBox[Point2D]] = None
        self.min_zoom = 0
        self.max_zoom = 0

        self.output_path.mkdir(parents=True, exist_ok=True)

    def get_tile_path(self, z: int, x: int, y: int, create_dirs: bool = False) -> Path:
        """Return ``{output}/{z}/{x}/{y}.{ext}``, optionally creating its folder."""

        path = self.output_path / str(z) / str(x) / f"{y}.{TILE_EXTENSIONS[self.tile_format]}"
        if create_dirs:
            path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def tms_to_xyz(self, ty: int, tz: int) -> int:
        """Flip a tile row between the TMS (south origin) and XYZ (north origin) conventions."""

        return (2**tz) - 1 - ty

    def get_min_max_coords_for_z(self, tz: int) -> BoundingBox[Point2D]:
        """Tile index range covered by the raster at zoom ``tz``."""

        if self.bounds is None:
            raise ConfigurationError("Raster bounds are not known yet")

        lower = self.mercator.meters_to_tile(self.bounds.min.x, self.bounds.min.y, tz)
        upper = self.mercator.meters_to_tile(self.bounds.max.x, self.bounds.max.y, tz)

        # Crop tiles extending world limits (+-180); both ends so min.x <= max.x holds
        world_max = 2**tz - 1
        min_x = min(max(0, lower.x), world_max)
        max_x = min(max(0, upper.x), world_max)
        # TODO: decide on y clamping once TMS vs. XYZ requests are checked against real clients
        coords = BoundingBox(Point2D(min_x, lower.y), Point2D(max_x, upper.y))

        LOGGER.debug(
            "tile range for zoom",
            extra={"zoom": tz, "min": (coords.min.x, coords.min.y), "max": (coords.max.x, coords.max.y)},
        )
        return coords
