"""Rescaling of raster samples into the 8-bit tile range."""

from __future__ import annotations

from enum import Enum

import numpy as np

from rastertiler.core.errors import ConfigurationError, RescaleError

RESCALE_EPSILON = 0.1


class SampleKind(Enum):
    """Numeric sample types a source raster may carry."""

    BYTE = "uint8"
    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @classmethod
    def from_dtype(cls, dtype: object) -> "SampleKind":
        name = np.dtype(dtype).name
        for kind in cls:
            if kind.value == name:
                return kind
        raise ConfigurationError(f"Unsupported raster sample type: {name}")

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @property
    def needs_rescale(self) -> bool:
        return self is not SampleKind.BYTE


def widen_range(b_min: float, b_max: float) -> tuple[float, float]:
    """Return a usable ``(min, max)`` pair, nudging ``max`` when both are equal."""

    if b_min == b_max:
        b_max += RESCALE_EPSILON
    # Can still happen for very large magnitudes
    if b_min == b_max:
        raise RescaleError("Cannot scale values due to source min/max being equal")
    return b_min, b_max


def rescale(buffer: np.ndarray, kind: SampleKind, b_min: float, b_max: float) -> np.ndarray:
    """Clamp ``buffer`` to ``[b_min, b_max]`` and map it linearly onto ``0..255``.

    The result is truncated to ``uint8``; the input array is left untouched.
    """

    if buffer.dtype != kind.dtype:
        raise ConfigurationError(
            f"Sample buffer is {buffer.dtype.name}, expected {kind.value}"
        )
    b_min, b_max = widen_range(float(b_min), float(b_max))
    delta = b_max - b_min

    values = np.clip(buffer.astype(np.float64), b_min, b_max)
    # NaN samples carry no value; the mask band hides them
    values = np.nan_to_num(values, nan=b_min)
    return (255.0 * (values - b_min) / delta).astype(np.uint8)
