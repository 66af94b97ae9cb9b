"""Tile image encoding with Pillow."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Union

import numpy as np
from PIL import Image, features

from rastertiler.core.errors import RasterIOError
from rastertiler.logging import get_logger

LOGGER = get_logger(__name__)

PILLOW_FORMATS = {
    "png": "PNG",
    "webp": "WEBP",
}


class PillowEncoder:
    """Write ``(bands, height, width)`` uint8 canvases as PNG or WebP images.

    Two, three and four band canvases are stored as LA, RGB and RGBA.
    """

    def __init__(self, *, webp_lossless: bool = True) -> None:
        self._webp_lossless = webp_lossless

    def supports(self, tile_format: str) -> bool:
        name = PILLOW_FORMATS.get(tile_format.lower())
        if name is None:
            return False
        Image.init()
        if name not in Image.SAVE:
            return False
        if name == "WEBP":
            return bool(features.check("webp"))
        return True

    def encode(
        self, tile_format: str, target: Union[Path, BinaryIO], canvas: np.ndarray
    ) -> None:
        fmt = tile_format.lower()
        if not self.supports(fmt):
            raise RasterIOError(f"Cannot encode tiles as {tile_format}")
        if canvas.dtype != np.uint8 or canvas.ndim != 3 or not 1 <= canvas.shape[0] <= 4:
            raise RasterIOError(
                f"Tile canvas must be uint8 with 1 to 4 bands, got {canvas.dtype.name} {canvas.shape}"
            )

        if canvas.shape[0] == 1:
            pixels = canvas[0]
        else:
            pixels = np.ascontiguousarray(np.moveaxis(canvas, 0, -1))
        image = Image.fromarray(pixels)

        options = {}
        if fmt == "webp":
            options["lossless"] = self._webp_lossless
        destination = str(target) if isinstance(target, Path) else target
        try:
            image.save(destination, format=PILLOW_FORMATS[fmt], **options)
        except (OSError, ValueError) as exc:
            raise RasterIOError(f"Cannot create output dataset {target}") from exc
        LOGGER.debug("encoded tile", extra={"target": str(target), "mode": image.mode})
