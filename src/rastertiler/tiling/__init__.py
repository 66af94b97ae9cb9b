"""Tile pyramid geometry and raster tile production."""

from .base import ImageEncoder, RasterBackend, RasterHandle
from .gdaltiler import GDALTiler
from .mercator import GlobalMercator
from .pyramid import PyramidBuilder, PyramidSummary
from .rescale import SampleKind, rescale
from .tiler import Tiler

__all__ = [
    "GDALTiler",
    "GlobalMercator",
    "ImageEncoder",
    "PyramidBuilder",
    "PyramidSummary",
    "RasterBackend",
    "RasterHandle",
    "SampleKind",
    "Tiler",
    "rescale",
]
