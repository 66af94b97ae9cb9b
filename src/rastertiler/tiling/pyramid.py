"""Batch generation of a tile pyramid and its TileJSON metadata."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from rastertiler.core.errors import OutOfBoundsError
from rastertiler.logging import get_logger

from .gdaltiler import GDALTiler
from .tiler import TILE_EXTENSIONS

LOGGER = get_logger(__name__)

TILEJSON_VERSION = "3.0.0"


@dataclass
class PyramidSummary:
    """Outcome of a pyramid run."""

    zooms: List[int]
    written: List[Path] = field(default_factory=list)
    skipped: int = 0
    tilejson_path: Optional[Path] = None

    @property
    def tile_count(self) -> int:
        return len(self.written)

    def to_dict(self) -> dict:
        return {
            "zooms": list(self.zooms),
            "tiles": self.tile_count,
            "skipped": self.skipped,
            "tilejson": str(self.tilejson_path) if self.tilejson_path else None,
        }


class PyramidBuilder:
    """Write every tile of a zoom range through a :class:`GDALTiler`."""

    def __init__(self, tiler: GDALTiler, *, name: Optional[str] = None, base_url: str = "") -> None:
        self._tiler = tiler
        self._name = name or tiler.input_path.stem
        self._base_url = base_url.rstrip("/")

    def zoom_range(self, min_zoom: Optional[int] = None, max_zoom: Optional[int] = None) -> List[int]:
        """Zoom levels to build, ascending.

        Defaults to the raster's own range. Rasters smaller than one tile get a
        native minimum zoom above their maximum, so the bounds are ordered
        before use.
        """

        low = self._tiler.min_zoom if min_zoom is None else min_zoom
        high = self._tiler.max_zoom if max_zoom is None else max_zoom
        if low < 0 or high < 0:
            raise ValueError("Zoom levels must be non-negative")
        low, high = sorted((low, high))
        return list(range(low, high + 1))

    def tile_indices(self, zoom: int) -> Iterator[Tuple[int, int]]:
        """Yield the ``(x, y)`` pairs to request at ``zoom``, in request row order."""

        coords = self._tiler.get_min_max_coords_for_z(zoom)
        world_max = 2**zoom - 1
        y_low = max(0, int(coords.min.y))
        y_high = min(world_max, int(coords.max.y))
        for x in range(int(coords.min.x), int(coords.max.x) + 1):
            for y in range(y_low, y_high + 1):
                yield x, (self._tiler.tms_to_xyz(y, zoom) if self._tiler.tms else y)

    def build(
        self,
        min_zoom: Optional[int] = None,
        max_zoom: Optional[int] = None,
        *,
        tilejson: bool = True,
    ) -> PyramidSummary:
        summary = PyramidSummary(zooms=self.zoom_range(min_zoom, max_zoom))
        for zoom in summary.zooms:
            written_before = summary.tile_count
            for x, y in self.tile_indices(zoom):
                try:
                    summary.written.append(self._tiler.tile(zoom, x, y))
                except OutOfBoundsError as exc:
                    summary.skipped += 1
                    LOGGER.debug("tile skipped", extra={"tile": (zoom, x, y), "reason": str(exc)})
            LOGGER.info(
                "zoom level done",
                extra={"zoom": zoom, "tiles": summary.tile_count - written_before},
            )

        if tilejson:
            summary.tilejson_path = self.write_tilejson(summary.zooms)
        LOGGER.info("pyramid complete", extra=summary.to_dict())
        return summary

    def write_tilejson(self, zooms: List[int], destination: Optional[Path] = None) -> Path:
        tilejson_path = destination or self._tiler.output_path / "tilejson.json"
        tilejson_path.parent.mkdir(parents=True, exist_ok=True)
        payload = self.tilejson_payload(zooms)
        LOGGER.info("write TileJSON metadata", extra={"path": str(tilejson_path)})
        tilejson_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return tilejson_path

    def tilejson_payload(self, zooms: List[int]) -> dict:
        tiler = self._tiler
        bounds = tiler.bounds
        mercator = tiler.mercator
        south_west = mercator.meters_to_lat_lon(bounds.min.x, bounds.min.y)
        north_east = mercator.meters_to_lat_lon(bounds.max.x, bounds.max.y)
        lonlat_bounds = [
            south_west.longitude,
            south_west.latitude,
            north_east.longitude,
            north_east.latitude,
        ]
        extension = TILE_EXTENSIONS[tiler.tile_format]
        template = f"{{z}}/{{x}}/{{y}}.{extension}"
        if self._base_url:
            template = f"{self._base_url}/{template}"
        return {
            "tilejson": TILEJSON_VERSION,
            "name": self._name,
            "bounds": lonlat_bounds,
            "center": [
                (lonlat_bounds[0] + lonlat_bounds[2]) / 2.0,
                (lonlat_bounds[1] + lonlat_bounds[3]) / 2.0,
                min(zooms),
            ],
            "minzoom": min(zooms),
            "maxzoom": max(zooms),
            "format": tiler.tile_format,
            # Stored rows are request rows: south origin unless tile() flips them
            "scheme": "xyz" if tiler.tms else "tms",
            "tiles": [template],
            "created_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
