"""Configuration loading utilities for rastertiler."""

from .loader import ConfigLoader, LoggingOptions, TilerConfig, load_config

__all__ = ["ConfigLoader", "LoggingOptions", "TilerConfig", "load_config"]
