"""Configuration management with YAML and JSON support."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_TILING_KEYS = ("tile_size", "tms", "tile_format", "min_zoom", "max_zoom", "resampling", "tilejson")


@dataclass
class LoggingOptions:
    level: str = "INFO"
    json: bool = False
    file: Optional[Path] = None


@dataclass
class TilerConfig:
    """Settings for a tiling run."""

    input_path: Optional[Path] = None
    output_dir: Path = Path("tiles")
    tile_size: int = 256
    tms: bool = False
    tile_format: str = "png"
    min_zoom: Optional[int] = None
    max_zoom: Optional[int] = None
    resampling: str = "nearest"
    tilejson: bool = True
    logging: LoggingOptions = field(default_factory=LoggingOptions)

    def resolve_relative_paths(self, base_dir: Path) -> None:
        """Resolve relative paths against the provided base directory."""

        if self.input_path is not None and not self.input_path.is_absolute():
            self.input_path = base_dir / self.input_path
        if not self.output_dir.is_absolute():
            self.output_dir = base_dir / self.output_dir
        if self.logging.file is not None and not self.logging.file.is_absolute():
            self.logging.file = base_dir / self.logging.file

    def override(self, **values: Any) -> "TilerConfig":
        """Apply non-None ``values`` on top of the loaded settings."""

        known = {item.name for item in fields(self)}
        for key, value in values.items():
            if key not in known:
                raise ValueError(f"Unknown configuration key: {key}")
            if value is not None:
                setattr(self, key, value)
        return self


class ConfigLoader:
    """Load tiler configuration files in YAML or JSON format."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = base_dir or Path.cwd()

    def load(self, path: Path | str) -> TilerConfig:
        """Parse a configuration file and return a populated dataclass."""

        config_path = self._resolve_path(Path(path))
        payload = self._load_payload(config_path)
        if not isinstance(payload, dict):
            raise ValueError("configuration file must contain a mapping")
        config = self._build_config(payload)
        config.resolve_relative_paths(config_path.parent)
        return config

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self._base_dir / path).resolve()

    def _load_payload(self, path: Path) -> Dict[str, Any]:
        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as handle:
                return yaml.safe_load(handle) or {}
        if suffix == ".json":
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle) or {}
        raise ValueError(f"Unsupported configuration format: {suffix}")

    def _build_config(self, payload: Dict[str, Any]) -> TilerConfig:
        input_path = payload.get("input_path")
        output_dir = Path(payload.get("output_dir", "tiles"))

        tiling_payload = payload.get("tiling") or {}
        if not isinstance(tiling_payload, dict):
            raise ValueError("tiling section must be a mapping")
        unknown = sorted(set(tiling_payload) - set(_TILING_KEYS))
        if unknown:
            raise ValueError(f"Unknown tiling keys: {', '.join(unknown)}")
        tiling = dict(tiling_payload)
        for key in ("tile_size", "min_zoom", "max_zoom"):
            if key in tiling and tiling[key] is not None:
                tiling[key] = int(tiling[key])
        for key in ("tms", "tilejson"):
            if key in tiling:
                tiling[key] = bool(tiling[key])
        if "tile_format" in tiling:
            tiling["tile_format"] = str(tiling["tile_format"]).lower()

        logging_payload = payload.get("logging") or {}
        if not isinstance(logging_payload, dict):
            raise ValueError("logging section must be a mapping")
        log_file = logging_payload.get("file")
        logging_options = LoggingOptions(
            level=str(logging_payload.get("level", "INFO")).upper(),
            json=bool(logging_payload.get("json", False)),
            file=Path(log_file) if log_file else None,
        )

        return TilerConfig(
            input_path=Path(input_path) if input_path else None,
            output_dir=output_dir,
            logging=logging_options,
            **tiling,
        )


def load_config(path: Path | str, *, base_dir: Optional[Path] = None) -> TilerConfig:
    """Convenience wrapper around :class:`ConfigLoader`."""

    loader = ConfigLoader(base_dir=base_dir)
    return loader.load(path)
