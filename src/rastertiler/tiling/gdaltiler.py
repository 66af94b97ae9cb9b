"""Raster tile producer: cut one web mercator tile at a time out of a raster."""

from __future__ import annotations

import contextlib
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from rastertiler.core.errors import (
    ConfigurationError,
    GeoreferenceError,
    OutOfBoundsError,
    RasterIOError,
)
from rastertiler.core.models import (
    BandStatistics,
    BoundingBox,
    GeoExtent,
    GQResult,
    Point2D,
    RasterDimensions,
)
from rastertiler.logging import get_logger

from .base import GeoTransform, ImageEncoder, RasterBackend, RasterHandle
from .rescale import SampleKind, rescale
from .tiler import Tiler

LOGGER = get_logger(__name__)

OUTPUT_SRS = "EPSG:3857"
IDENTITY_GEOTRANSFORM = (0.0, 1.0, 0.0, 0.0, 0.0, 1.0)
MAX_OUTPUT_BANDS = 3
PIXEL_SIZE_EPSILON = 1e-12


def normalize_proj4(proj4: str) -> str:
    """Order-independent form of a PROJ4 definition used for comparisons."""

    return " ".join(sorted(token for token in proj4.split() if token))


class GDALTiler(Tiler):
    """Produce web mercator tiles from a georeferenced raster.

    The raster is opened (and reprojected to EPSG:3857 when needed) once, at
    construction. Each :meth:`tile` call reads the source window under one
    tile, rescales it to 8 bits, adds an alpha channel and encodes the result
    to ``{output}/{z}/{x}/{y}.{ext}``.

    Instances own the datasets they open; use :meth:`close` or a ``with``
    block to release them.
    """

    def __init__(
        self,
        input_path: Path | str,
        output_path: Path | str,
        tile_size: int = 256,
        tms: bool = False,
        tile_format: str = "png",
        *,
        backend: Optional[RasterBackend] = None,
        encoder: Optional[ImageEncoder] = None,
    ) -> None:
        super().__init__(input_path, output_path, tile_size, tms, tile_format)

        if backend is None:
            from rastertiler.raster.backend import RasterioBackend

            backend = RasterioBackend()
        if encoder is None:
            from rastertiler.raster.encoder import PillowEncoder

            encoder = PillowEncoder()
        self._backend = backend
        self._encoder = encoder
        self._stack = contextlib.ExitStack()
        self._closed = False

        try:
            self._setup()
        except BaseException:
            self._stack.close()
            self._closed = True
            raise

    def _setup(self) -> None:
        if not self._encoder.supports(self.tile_format):
            raise ConfigurationError(f"Cannot create {self.tile_format.upper()} driver")
        self._backend.ensure_ready()

        source = self._backend.open(self.input_path)
        self._stack.callback(self._backend.close, source)
        self._source = source

        dims = self._backend.dimensions(source)
        if dims.bands == 0:
            raise ConfigurationError(f"{self.input_path} has no raster bands")

        gcp_count, gcp_srs = self._backend.gcps(source)
        input_srs = self._backend.projection(source)
        if not input_srs and gcp_count > 0:
            input_srs = gcp_srs
        if not input_srs:
            raise GeoreferenceError(f"Cannot get projection from {self.input_path}")

        source_gt = self._backend.geotransform(source)
        if not self.has_georeference(source_gt, gcp_count):
            raise GeoreferenceError(
                f"{self.input_path} is not georeferenced; "
                "assign a geotransform or ground control points first"
            )

        # GCP-only rasters report the identity transform; warping derives a real one.
        gcp_only = gcp_count > 0 and self.is_identity(source_gt)
        self._reprojected = gcp_only or not self.same_projection(input_srs, OUTPUT_SRS)
        if self._reprojected:
            handle = self._backend.reproject(source, OUTPUT_SRS)
            self._stack.callback(self._backend.close, handle)
        else:
            handle = source
        self._handle = handle

        self._dims = self._backend.dimensions(handle)
        self._bands = self.data_bands_count(handle)
        self._alpha_band = self.find_alpha_band(handle)
        self._sample_kind = SampleKind.from_dtype(self._backend.data_type(handle))

        gt = self._backend.geotransform(handle)
        if abs(gt[1]) < PIXEL_SIZE_EPSILON or abs(gt[5]) < PIXEL_SIZE_EPSILON:
            raise ConfigurationError("Invalid geotransform: pixel size is zero")
        if self.is_identity(gt):
            raise GeoreferenceError(f"Cannot fetch geotransform of {self.input_path}")
        if gt[5] > 0:
            raise ConfigurationError(
                f"{self.input_path} is stored south-up; rewrite it north-up before tiling"
            )
        self._geotransform = gt

        x0 = gt[0]
        x1 = gt[0] + self._dims.width * gt[1]
        y0 = gt[3]
        y1 = gt[3] + self._dims.height * gt[5]
        self.bounds = BoundingBox(Point2D(min(x0, x1), min(y0, y1)), Point2D(max(x0, x1), max(y0, y1)))

        self.max_zoom = self.mercator.zoom_for_pixel_size(gt[1])
        self.min_zoom = self.mercator.zoom_for_pixel_size(
            gt[1] * max(self._dims.width, self._dims.height) / self.tile_size
        )

        LOGGER.info(
            "raster tiler ready",
            extra={
                "input": str(self.input_path),
                "size": (self._dims.width, self._dims.height),
                "bands": self._bands,
                "sample_kind": self._sample_kind.value,
                "reprojected": self._reprojected,
                "bounds": (self.bounds.min.x, self.bounds.min.y, self.bounds.max.x, self.bounds.max.y),
                "zoom": (self.min_zoom, self.max_zoom),
            },
        )

    @property
    def bands(self) -> int:
        """Number of data bands, alpha excluded."""

        return self._bands

    @property
    def sample_kind(self) -> SampleKind:
        return self._sample_kind

    @property
    def reprojected(self) -> bool:
        return self._reprojected

    @property
    def dimensions(self) -> RasterDimensions:
        return self._dims

    @property
    def geotransform(self) -> GeoTransform:
        return self._geotransform

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stack.close()
        LOGGER.debug("raster tiler closed", extra={"input": str(self.input_path)})

    def __enter__(self) -> "GDALTiler":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @staticmethod
    def is_identity(geotransform: Sequence[float]) -> bool:
        return tuple(float(value) for value in geotransform) == IDENTITY_GEOTRANSFORM

    @classmethod
    def has_georeference(cls, geotransform: Sequence[float], gcp_count: int) -> bool:
        return not (cls.is_identity(geotransform) and gcp_count == 0)

    def same_projection(self, first: str, second: str) -> bool:
        """Compare two spatial references through their normalized PROJ4 text."""

        return normalize_proj4(self._backend.srs_to_proj4(first)) == normalize_proj4(
            self._backend.srs_to_proj4(second)
        )

    def data_bands_count(self, handle: RasterHandle) -> int:
        """Band count without a trailing alpha band."""

        count = self._backend.dimensions(handle).bands
        interpretations = self._backend.color_interpretations(handle)
        if (
            "alpha" in self._backend.mask_flags(handle, 1)
            or count in (2, 4)
            or (interpretations and interpretations[-1] == "alpha")
        ):
            return count - 1
        return count

    def find_alpha_band(self, handle: RasterHandle) -> Optional[int]:
        """1-based index of the first alpha band, or None."""

        for index, interpretation in enumerate(self._backend.color_interpretations(handle), start=1):
            if interpretation == "alpha":
                return index
        return None

    def geo_query(
        self, ulx: float, uly: float, lrx: float, lry: float, query_size: int = 0
    ) -> GQResult:
        """Map a projected box onto the raster.

        Returns the source pixel window ``r`` and the matching window ``w`` of
        a ``query_size`` wide canvas. Parts of the box beyond the raster edges
        are trimmed from both windows in proportion, so edge tiles keep their
        data at the right offset instead of being stretched.
        """

        gt = self._geotransform
        if abs(gt[1]) < PIXEL_SIZE_EPSILON or abs(gt[5]) < PIXEL_SIZE_EPSILON:
            raise ConfigurationError("Invalid geotransform: pixel size is zero")
        width, height = self._dims.width, self._dims.height

        rx = int((ulx - gt[0]) / gt[1] + 0.001)
        ry = int((uly - gt[3]) / gt[5] + 0.001)
        rxsize = int((lrx - ulx) / gt[1] + 0.5)
        rysize = int((lry - uly) / gt[5] + 0.5)

        if query_size:
            wxsize, wysize = query_size, query_size
        else:
            wxsize, wysize = rxsize, rysize
        if rxsize <= 0 or rysize <= 0:
            return GQResult(GeoExtent(0, 0, 0, 0), GeoExtent(0, 0, 0, 0))

        # Coordinates should not go out of the bounds of the raster
        wx = 0
        if rx < 0:
            rxshift = abs(rx)
            wx = int(wxsize * (float(rxshift) / rxsize))
            wxsize = wxsize - wx
            rxsize = rxsize - int(rxsize * (float(rxshift) / rxsize))
            rx = 0
        if rx + rxsize > width:
            wxsize = int(wxsize * (float(width - rx) / rxsize))
            rxsize = width - rx

        wy = 0
        if ry < 0:
            ryshift = abs(ry)
            wy = int(wysize * (float(ryshift) / rysize))
            wysize = wysize - wy
            rysize = rysize - int(rysize * (float(ryshift) / rysize))
            ry = 0
        if ry + rysize > height:
            wysize = int(wysize * (float(height - ry) / rysize))
            rysize = height - ry

        return GQResult(
            r=GeoExtent(rx, ry, max(rxsize, 0), max(rysize, 0)),
            w=GeoExtent(wx, wy, max(wxsize, 0), max(wysize, 0)),
        )

    def tile(self, z: int, x: int, y: int) -> Path:
        """Write the tile ``(z, x, y)`` and return its path.

        Raises :class:`OutOfBoundsError` when the tile lies outside the
        raster's tile range or does not overlap any raster pixel.
        """

        if self._closed:
            raise RasterIOError(f"Tiler for {self.input_path} is closed")

        path = self.get_tile_path(z, x, y, create_dirs=True)
        if self.tms:
            y = self.tms_to_xyz(y, z)

        coords = self.get_min_max_coords_for_z(z)
        if not coords.contains(x, y):
            raise OutOfBoundsError(
                f"Tile {z}/{x}/{y} is outside the raster tile range "
                f"{coords.min.x},{coords.min.y} - {coords.max.x},{coords.max.y}"
            )

        out_bands = min(MAX_OUTPUT_BANDS, self._bands)
        canvas = np.zeros((out_bands + 1, self.tile_size, self.tile_size), dtype=np.uint8)

        b = self.mercator.tile_bounds(x, y, z)
        query = self.geo_query(b.min.x, b.max.y, b.max.x, b.min.y, self.tile_size)
        if query.r.empty or query.w.empty:
            raise OutOfBoundsError(f"Tile {z}/{x}/{y} does not intersect the raster")

        r, w = query.r, query.w
        out_size = (w.xsize, w.ysize)
        data = self._backend.read_window(self._handle, r, list(range(1, out_bands + 1)), out_size)
        if self._sample_kind.needs_rescale:
            b_min, b_max = self._global_range(out_bands)
            data = rescale(data, self._sample_kind, b_min, b_max)
        else:
            data = np.asarray(data, dtype=np.uint8)

        canvas[:out_bands, w.y : w.y + w.ysize, w.x : w.x + w.xsize] = data
        canvas[out_bands, w.y : w.y + w.ysize, w.x : w.x + w.xsize] = self._read_alpha(r, out_size)

        self._encoder.encode(self.tile_format, path, canvas)
        LOGGER.debug(
            "tile written",
            extra={"tile": (z, x, y), "path": str(path), "src_window": (r.x, r.y, r.xsize, r.ysize)},
        )
        return path

    def _read_alpha(self, extent: GeoExtent, out_size) -> np.ndarray:
        if self._alpha_band is not None:
            alpha = self._backend.read_window(self._handle, extent, [self._alpha_band], out_size)[0]
            if alpha.dtype != np.uint8:
                alpha = np.clip(alpha, 0, 255).astype(np.uint8)
            return alpha
        return self._backend.read_mask(self._handle, 1, extent, out_size)

    def _global_range(self, band_count: int) -> tuple[float, float]:
        """Smallest minimum and largest maximum over the first ``band_count`` bands.

        Statistics come from the source raster, not the warped view, so
        resampling does not shift them.
        """

        stats: List[BandStatistics] = [self._band_statistics(band) for band in range(1, band_count + 1)]
        return min(s.minimum for s in stats), max(s.maximum for s in stats)

    def _band_statistics(self, band: int) -> BandStatistics:
        stats = self._backend.band_statistics(self._source, band, False)
        if stats is not None:
            return stats
        stats = self._backend.band_statistics(self._source, band, True)
        if stats is None:
            raise RasterIOError(f"Cannot compute statistics for band {band} of {self.input_path}")
        self._backend.cache_band_statistics(self._source, band, stats)
        LOGGER.debug(
            "cached band statistics",
            extra={"band": band, "min": stats.minimum, "max": stats.maximum},
        )
        return stats
