"""One-time initialization of the raster library environment."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, Optional

import rasterio

from rastertiler.core.errors import ConfigurationError
from rastertiler.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_OPTIONS: Dict[str, str] = {
    "OGR_CT_FORCE_TRADITIONAL_GIS_ORDER": "YES",
}

_LOCK = threading.Lock()
_ENV: Optional[rasterio.Env] = None


def initialize(**options: str) -> rasterio.Env:
    """Register drivers and apply configuration options once per process.

    Later calls return the environment already entered, whatever options
    they pass.
    """

    global _ENV
    with _LOCK:
        if _ENV is not None:
            return _ENV
        merged = {**DEFAULT_OPTIONS, **options}
        env = rasterio.Env(**merged)
        env.__enter__()
        _ENV = env
    LOGGER.info(
        "raster environment initialized",
        extra={"gdal_version": rasterio.__gdal_version__, "options": merged},
    )
    return env


def is_initialized() -> bool:
    return _ENV is not None


def shutdown() -> None:
    """Leave the environment entered by :func:`initialize`."""

    global _ENV
    with _LOCK:
        if _ENV is None:
            return
        env, _ENV = _ENV, None
    env.__exit__(None, None, None)
    LOGGER.debug("raster environment released")


def available_drivers() -> Dict[str, str]:
    return dict(initialize().drivers())


def require_drivers(names: Iterable[str]) -> None:
    """Raise :class:`ConfigurationError` unless every named driver is registered."""

    drivers = available_drivers()
    missing = [name for name in names if name not in drivers]
    if missing:
        raise ConfigurationError(f"Cannot create {', '.join(missing)} driver")
