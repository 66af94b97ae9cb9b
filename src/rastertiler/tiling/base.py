"""Protocol definitions for the collaborators of the tile producer."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Sequence, Tuple, Union

import numpy as np

from rastertiler.core.models import BandStatistics, GeoExtent, RasterDimensions

GeoTransform = Tuple[float, float, float, float, float, float]


class RasterHandle(Protocol):
    """Opaque, closable handle on an opened raster dataset."""

    @property
    def closed(self) -> bool:
        """Return True once the handle has been released."""

    def close(self) -> None:
        """Release the underlying dataset."""


class RasterBackend(Protocol):
    """Interface for opening rasters and reading their pixels and metadata."""

    def ensure_ready(self) -> None:
        """Initialize the underlying library and check the drivers it needs."""

    def open(self, path: Path) -> RasterHandle:
        """Open ``path`` read-only."""

    def close(self, handle: RasterHandle) -> None:
        """Release ``handle``; closing twice is allowed."""

    def dimensions(self, handle: RasterHandle) -> RasterDimensions:
        """Return the raster width, height and band count."""

    def geotransform(self, handle: RasterHandle) -> GeoTransform:
        """Return the six affine coefficients in GDAL order."""

    def projection(self, handle: RasterHandle) -> Optional[str]:
        """Return the dataset spatial reference as WKT, or None."""

    def gcps(self, handle: RasterHandle) -> Tuple[int, Optional[str]]:
        """Return the ground control point count and their spatial reference as WKT."""

    def srs_to_proj4(self, srs: str) -> str:
        """Parse ``srs`` (WKT or an authority code) and export it as PROJ4 text."""

    def reproject(self, handle: RasterHandle, crs: str) -> RasterHandle:
        """Return a warped view of ``handle`` in ``crs``; the source stays untouched."""

    def data_type(self, handle: RasterHandle) -> str:
        """Return the numpy dtype name of the first band."""

    def color_interpretations(self, handle: RasterHandle) -> Sequence[str]:
        """Return the colour interpretation names of every band, lower case."""

    def mask_flags(self, handle: RasterHandle, band: int) -> Sequence[str]:
        """Return the mask flag names of ``band``, lower case."""

    def read_window(
        self,
        handle: RasterHandle,
        extent: GeoExtent,
        bands: Sequence[int],
        out_size: Tuple[int, int],
    ) -> np.ndarray:
        """Read ``extent`` of ``bands`` resampled to ``out_size`` (width, height)."""

    def read_mask(
        self,
        handle: RasterHandle,
        band: int,
        extent: GeoExtent,
        out_size: Tuple[int, int],
    ) -> np.ndarray:
        """Read the default 8-bit validity mask of ``band``."""

    def band_statistics(
        self, handle: RasterHandle, band: int, force: bool
    ) -> Optional[BandStatistics]:
        """Return cached statistics, computing them only when ``force`` is set."""

    def cache_band_statistics(
        self, handle: RasterHandle, band: int, stats: BandStatistics
    ) -> None:
        """Store ``stats`` so later lookups find them without recomputing."""


class ImageEncoder(Protocol):
    """Interface for writing a tile canvas as an image file."""

    def supports(self, tile_format: str) -> bool:
        """Return True when ``tile_format`` can be written."""

    def encode(
        self, tile_format: str, target: Union[Path, BinaryIO], canvas: np.ndarray
    ) -> None:
        """Encode a ``(bands, height, width)`` uint8 canvas into ``target``."""
