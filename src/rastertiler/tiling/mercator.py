"""Spherical mercator (EPSG:3857) tile pyramid arithmetic.

Tile rows follow the TMS convention used by gdal2tiles: pixel and tile
coordinates grow from the south-west corner of the projected world.
"""

from __future__ import annotations

import math

from rastertiler.core.models import BoundingBox, Geographic2D, Point2D

EARTH_RADIUS = 6378137.0
MAX_ZOOM_LEVEL = 31


class GlobalMercator:
    """Coordinate conversions between pixels, meters and tiles at a zoom level."""

    def __init__(self, tile_size: int = 256) -> None:
        self.tile_size = tile_size
        # 156543.03392804062 for 256 pixel tiles
        self.initial_resolution = 2 * math.pi * EARTH_RADIUS / tile_size
        # 20037508.342789244
        self.origin_shift = math.pi * EARTH_RADIUS

    def resolution(self, zoom: int) -> float:
        """Meters per pixel at ``zoom``, measured at the equator."""

        return self.initial_resolution / (2**zoom)

    def pixels_to_meters(self, px: float, py: float, zoom: int) -> Point2D:
        res = self.resolution(zoom)
        return Point2D(px * res - self.origin_shift, py * res - self.origin_shift)

    def meters_to_pixels(self, mx: float, my: float, zoom: int) -> Point2D:
        res = self.resolution(zoom)
        return Point2D((mx + self.origin_shift) / res, (my + self.origin_shift) / res)

    def meters_to_lat_lon(self, mx: float, my: float) -> Geographic2D:
        lon = (mx / self.origin_shift) * 180.0
        lat = (my / self.origin_shift) * 180.0
        lat = 180.0 / math.pi * (2 * math.atan(math.exp(lat * math.pi / 180.0)) - math.pi / 2.0)
        return Geographic2D(latitude=lat, longitude=lon)

    def lat_lon_to_meters(self, lat: float, lon: float) -> Point2D:
        mx = lon * self.origin_shift / 180.0
        my = math.log(math.tan((90 + lat) * math.pi / 360.0)) / (math.pi / 180.0)
        my = my * self.origin_shift / 180.0
        return Point2D(mx, my)

    def pixels_to_tile(self, px: float, py: float) -> Point2D:
        """Tile covering the pixel ``(px, py)``.

        ``ceil(p / size) - 1`` keeps a point sitting exactly on a tile edge in
        the tile below/left of that edge.
        """

        return Point2D(
            int(math.ceil(px / float(self.tile_size)) - 1),
            int(math.ceil(py / float(self.tile_size)) - 1),
        )

    def meters_to_tile(self, mx: float, my: float, zoom: int) -> Point2D:
        p = self.meters_to_pixels(mx, my, zoom)
        return self.pixels_to_tile(p.x, p.y)

    def tile_bounds(self, tx: int, ty: int, zoom: int) -> BoundingBox[Point2D]:
        """Bounds of the tile in EPSG:3857 meters."""

        lower = self.pixels_to_meters(tx * self.tile_size, ty * self.tile_size, zoom)
        upper = self.pixels_to_meters((tx + 1) * self.tile_size, (ty + 1) * self.tile_size, zoom)
        return BoundingBox(lower, upper)

    def tile_lat_lon_bounds(self, tx: int, ty: int, zoom: int) -> BoundingBox[Geographic2D]:
        bounds = self.tile_bounds(tx, ty, zoom)
        return BoundingBox(
            self.meters_to_lat_lon(bounds.min.x, bounds.min.y),
            self.meters_to_lat_lon(bounds.max.x, bounds.max.y),
        )

    def zoom_for_pixel_size(self, pixel_size: float) -> int:
        """First zoom level whose resolution is at least as fine as ``pixel_size``."""

        for zoom in range(MAX_ZOOM_LEVEL + 1):
            if self.resolution(zoom) <= pixel_size:
                return zoom
        return MAX_ZOOM_LEVEL

    def zoom_for_length(self, meter_length: float) -> int:
        for zoom in range(MAX_ZOOM_LEVEL + 1):
            if self.resolution(zoom) <= meter_length:
                return zoom
        return MAX_ZOOM_LEVEL
