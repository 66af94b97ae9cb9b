"""Raster access built on rasterio."""

from __future__ import annotations

import math
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.enums import ColorInterp, Resampling
from rasterio.errors import CRSError, NotGeoreferencedWarning, RasterioError
from rasterio.vrt import WarpedVRT
from rasterio.windows import Window

from rastertiler.core.errors import ConfigurationError, GeoreferenceError, RasterIOError
from rastertiler.core.models import BandStatistics, GeoExtent, RasterDimensions
from rastertiler.logging import get_logger

from . import environment

LOGGER = get_logger(__name__)

# Drivers the backend relies on for warped views and in-memory datasets.
REQUIRED_DRIVERS = ("MEM", "VRT")

_STATISTICS_TAGS = (
    "STATISTICS_MINIMUM",
    "STATISTICS_MAXIMUM",
    "STATISTICS_MEAN",
    "STATISTICS_STDDEV",
)


class RasterHandle:
    """Owned reference to an opened rasterio dataset.

    Closing is idempotent. Band statistics cached through
    :meth:`RasterioBackend.cache_band_statistics` live as long as the handle.
    """

    def __init__(self, dataset: Any, *, name: str, source: Optional["RasterHandle"] = None) -> None:
        self._dataset = dataset
        self.name = name
        self.source = source
        self.statistics: Dict[int, BandStatistics] = {}

    @property
    def dataset(self) -> Any:
        if self._dataset is None:
            raise RasterIOError(f"Raster {self.name} is closed")
        return self._dataset

    @property
    def closed(self) -> bool:
        return self._dataset is None

    def close(self) -> None:
        if self._dataset is None:
            return
        dataset, self._dataset = self._dataset, None
        dataset.close()
        LOGGER.debug("closed raster", extra={"raster": self.name})

    def __enter__(self) -> "RasterHandle":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<RasterHandle {self.name!r} {state}>"


class RasterioBackend:
    """Implement the raster access operations the tile producer needs."""

    def __init__(self, *, warp_tolerance: float = 0.001, resampling: str = "nearest") -> None:
        self._warp_tolerance = warp_tolerance
        try:
            self._resampling = Resampling[resampling]
        except KeyError as exc:
            raise ConfigurationError(f"Unknown resampling method: {resampling}") from exc

    def ensure_ready(self) -> None:
        environment.initialize()
        environment.require_drivers(REQUIRED_DRIVERS)

    def open(self, path: Path) -> RasterHandle:
        try:
            with warnings.catch_warnings():
                # Georeferencing is validated by the caller.
                warnings.simplefilter("ignore", NotGeoreferencedWarning)
                dataset = rasterio.open(str(path))
        except RasterioError as exc:
            raise RasterIOError(f"Cannot open {path}") from exc
        LOGGER.debug("opened raster", extra={"raster": str(path), "driver": dataset.driver})
        return RasterHandle(dataset, name=str(path))

    def close(self, handle: RasterHandle) -> None:
        handle.close()

    def dimensions(self, handle: RasterHandle) -> RasterDimensions:
        ds = handle.dataset
        return RasterDimensions(width=ds.width, height=ds.height, bands=ds.count)

    def geotransform(self, handle: RasterHandle) -> Tuple[float, float, float, float, float, float]:
        return tuple(float(value) for value in handle.dataset.transform.to_gdal())  # type: ignore[return-value]

    def projection(self, handle: RasterHandle) -> Optional[str]:
        crs = handle.dataset.crs
        if crs is None:
            return None
        wkt = crs.to_wkt()
        return wkt or None

    def gcps(self, handle: RasterHandle) -> Tuple[int, Optional[str]]:
        points, crs = handle.dataset.gcps
        return len(points), (crs.to_wkt() if crs else None)

    def srs_to_proj4(self, srs: str) -> str:
        try:
            return CRS.from_user_input(srs).to_proj4()
        except CRSError as exc:
            raise GeoreferenceError(
                "Cannot read spatial reference system. Is PROJ available?"
            ) from exc

    def reproject(self, handle: RasterHandle, crs: str) -> RasterHandle:
        ds = handle.dataset
        options: Dict[str, Any] = {
            "crs": crs,
            "resampling": self._resampling,
            "tolerance": self._warp_tolerance,
            "add_alpha": ColorInterp.alpha not in ds.colorinterp,
        }
        if ds.crs is None:
            _, gcp_crs = ds.gcps
            if gcp_crs is not None:
                options["src_crs"] = gcp_crs
        try:
            vrt = WarpedVRT(ds, **options)
        except (RasterioError, ValueError) as exc:
            raise RasterIOError(f"Cannot create warped VRT for {handle.name}") from exc
        LOGGER.info(
            "reprojecting raster on the fly",
            extra={"raster": handle.name, "dst_crs": crs, "add_alpha": options["add_alpha"]},
        )
        return RasterHandle(vrt, name=f"{handle.name} (warped)", source=handle)

    def data_type(self, handle: RasterHandle) -> str:
        return handle.dataset.dtypes[0]

    def color_interpretations(self, handle: RasterHandle) -> Sequence[str]:
        return [interp.name for interp in handle.dataset.colorinterp]

    def mask_flags(self, handle: RasterHandle, band: int) -> Sequence[str]:
        return [flag.name for flag in handle.dataset.mask_flag_enums[band - 1]]

    def read_window(
        self,
        handle: RasterHandle,
        extent: GeoExtent,
        bands: Sequence[int],
        out_size: Tuple[int, int],
    ) -> np.ndarray:
        width, height = out_size
        try:
            return handle.dataset.read(
                indexes=list(bands),
                window=_window(extent),
                out_shape=(len(bands), height, width),
                resampling=Resampling.nearest,
            )
        except RasterioError as exc:
            raise RasterIOError("Cannot read input dataset window") from exc

    def read_mask(
        self,
        handle: RasterHandle,
        band: int,
        extent: GeoExtent,
        out_size: Tuple[int, int],
    ) -> np.ndarray:
        width, height = out_size
        try:
            return handle.dataset.read_masks(
                band,
                window=_window(extent),
                out_shape=(height, width),
                resampling=Resampling.nearest,
            )
        except RasterioError as exc:
            raise RasterIOError("Cannot read input dataset alpha window") from exc

    def band_statistics(
        self, handle: RasterHandle, band: int, force: bool
    ) -> Optional[BandStatistics]:
        cached = handle.statistics.get(band)
        if cached is not None:
            return cached
        from_tags = _statistics_from_tags(handle.dataset.tags(band))
        if from_tags is not None:
            return from_tags
        if not force:
            return None
        return self._compute_statistics(handle, band)

    def cache_band_statistics(
        self, handle: RasterHandle, band: int, stats: BandStatistics
    ) -> None:
        if handle.closed:
            raise RasterIOError(f"Cannot cache band statistics on closed raster {handle.name}")
        handle.statistics[band] = stats

    def _compute_statistics(self, handle: RasterHandle, band: int) -> BandStatistics:
        ds = handle.dataset
        count = 0
        total = 0.0
        total_sq = 0.0
        minimum = math.inf
        maximum = -math.inf
        try:
            for _, window in ds.block_windows(band):
                block = ds.read(band, window=window, masked=True)
                values = block.compressed().astype(np.float64)
                values = values[np.isfinite(values)]
                if values.size == 0:
                    continue
                count += values.size
                total += float(values.sum())
                total_sq += float(np.square(values).sum())
                minimum = min(minimum, float(values.min()))
                maximum = max(maximum, float(values.max()))
        except RasterioError as exc:
            raise RasterIOError(f"Cannot compute band {band} statistics") from exc

        if count == 0:
            raise RasterIOError(f"Cannot compute band {band} statistics: no valid pixels")
        mean = total / count
        stddev = math.sqrt(max(total_sq / count - mean * mean, 0.0))
        LOGGER.debug(
            "computed band statistics",
            extra={"raster": handle.name, "band": band, "min": minimum, "max": maximum},
        )
        return BandStatistics(minimum=minimum, maximum=maximum, mean=mean, stddev=stddev)


def _window(extent: GeoExtent) -> Window:
    return Window(extent.x, extent.y, extent.xsize, extent.ysize)


def _statistics_from_tags(tags: Dict[str, str]) -> Optional[BandStatistics]:
    if "STATISTICS_MINIMUM" not in tags or "STATISTICS_MAXIMUM" not in tags:
        return None
    try:
        values = [float(tags[key]) if key in tags else None for key in _STATISTICS_TAGS]
    except ValueError:
        return None
    minimum, maximum, mean, stddev = values
    return BandStatistics(minimum=minimum, maximum=maximum, mean=mean, stddev=stddev)  # type: ignore[arg-type]
