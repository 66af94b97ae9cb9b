"""Raster access and image encoding collaborators."""

from .analyzer import RasterInfo, describe_raster
from .backend import RasterHandle, RasterioBackend
from .encoder import PillowEncoder
from .environment import initialize, shutdown

__all__ = [
    "PillowEncoder",
    "RasterHandle",
    "RasterInfo",
    "RasterioBackend",
    "describe_raster",
    "initialize",
    "shutdown",
]
