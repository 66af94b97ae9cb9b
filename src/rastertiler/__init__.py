"""rastertiler: cut georeferenced rasters into web mercator tile pyramids."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "BoundingBox",
    "ConfigLoader",
    "GDALTiler",
    "GlobalMercator",
    "PillowEncoder",
    "PyramidBuilder",
    "RasterioBackend",
    "TilerConfig",
    "TilerError",
    "Tiler",
    "describe_raster",
]

_MODULE_MAP = {
    "BoundingBox": ("rastertiler.core", "BoundingBox"),
    "ConfigLoader": ("rastertiler.config", "ConfigLoader"),
    "GDALTiler": ("rastertiler.tiling", "GDALTiler"),
    "GlobalMercator": ("rastertiler.tiling", "GlobalMercator"),
    "PillowEncoder": ("rastertiler.raster", "PillowEncoder"),
    "PyramidBuilder": ("rastertiler.tiling", "PyramidBuilder"),
    "RasterioBackend": ("rastertiler.raster", "RasterioBackend"),
    "TilerConfig": ("rastertiler.config", "TilerConfig"),
    "TilerError": ("rastertiler.core", "TilerError"),
    "Tiler": ("rastertiler.tiling", "Tiler"),
    "describe_raster": ("rastertiler.raster", "describe_raster"),
}


def __getattr__(name: str) -> Any:
    if name not in _MODULE_MAP:
        raise AttributeError(f"module 'rastertiler' has no attribute '{name}'")
    module_name, attr = _MODULE_MAP[name]
    module = importlib.import_module(module_name)
    return getattr(module, attr)
