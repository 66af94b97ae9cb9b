"""Describe a georeferenced raster: size, geotransform, projection and footprint."""

from __future__ import annotations

import warnings
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import rasterio
from rasterio.errors import NotGeoreferencedWarning, RasterioError
from rasterio.warp import transform as transform_points

from rastertiler.core.errors import RasterIOError
from rastertiler.core.models import Geographic2D
from rastertiler.logging import get_logger

from . import environment

LOGGER = get_logger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"


@dataclass(frozen=True)
class BandInfo:
    index: int
    data_type: str
    color_interpretation: str


@dataclass
class RasterInfo:
    """Summary of a raster file as reported by :func:`describe_raster`."""

    path: Path
    driver: str
    width: int
    height: int
    geotransform: Optional[Tuple[float, ...]] = None
    projection: Optional[str] = None
    corners: Dict[str, Geographic2D] = field(default_factory=dict)
    center: Optional[Geographic2D] = None
    bands: List[BandInfo] = field(default_factory=list)

    @property
    def georeferenced(self) -> bool:
        return self.geotransform is not None and self.projection is not None

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["path"] = str(self.path)
        payload["georeferenced"] = self.georeferenced
        return payload


def describe_raster(path: Path | str) -> RasterInfo:
    """Open ``path`` and collect its geometry and per-band metadata.

    Corner and centre coordinates are given in WGS84 when the raster has both
    a geotransform and a projection; otherwise they are left empty.
    """

    path = Path(path)
    environment.initialize()
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            dataset = rasterio.open(str(path))
    except RasterioError as exc:
        raise RasterIOError(f"Cannot open {path}") from exc

    with dataset:
        info = RasterInfo(path=path, driver=dataset.driver, width=dataset.width, height=dataset.height)
        info.bands = [
            BandInfo(index=index, data_type=dtype, color_interpretation=interp.name)
            for index, (dtype, interp) in enumerate(zip(dataset.dtypes, dataset.colorinterp), start=1)
        ]

        if not dataset.transform.is_identity:
            info.geotransform = tuple(float(value) for value in dataset.transform.to_gdal())
        if dataset.crs is not None:
            info.projection = dataset.crs.to_wkt()

        if info.georeferenced:
            pixels = {
                "upper_left": (0, 0),
                "upper_right": (dataset.width, 0),
                "lower_right": (dataset.width, dataset.height),
                "lower_left": (0, dataset.height),
                "center": (dataset.width / 2.0, dataset.height / 2.0),
            }
            xs, ys = [], []
            for col, row in pixels.values():
                x, y = dataset.xy(row, col, offset="ul")
                xs.append(x)
                ys.append(y)
            try:
                lons, lats = transform_points(dataset.crs, GEOGRAPHIC_CRS, xs, ys)
            except RasterioError as exc:
                raise RasterIOError(f"Cannot transform {path} corners to {GEOGRAPHIC_CRS}") from exc
            points = {
                name: Geographic2D(latitude=lat, longitude=lon)
                for name, lon, lat in zip(pixels, lons, lats)
            }
            info.center = points.pop("center")
            info.corners = points

    LOGGER.info(
        "described raster",
        extra={"path": str(path), "size": (info.width, info.height), "bands": len(info.bands)},
    )
    return info
