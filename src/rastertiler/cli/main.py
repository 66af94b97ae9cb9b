"""CLI entry point for rastertiler."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable, Optional

from rastertiler.config import TilerConfig, load_config
from rastertiler.core.errors import TilerError
from rastertiler.logging import configure_logging, get_logger
from rastertiler.raster import RasterioBackend, describe_raster
from rastertiler.tiling import GDALTiler, PyramidBuilder

LOGGER = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cut georeferenced rasters into web mercator tiles")
    parser.add_argument("--log-json", action="store_true", help="Emit logs in JSON format")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    subcommands = parser.add_subparsers(dest="command", required=True)

    tile = subcommands.add_parser("tile", help="Write a single tile")
    tile.add_argument("z", type=int, help="Zoom level")
    tile.add_argument("x", type=int, help="Tile column")
    tile.add_argument("y", type=int, help="Tile row")
    _add_tiling_arguments(tile)

    pyramid = subcommands.add_parser("pyramid", help="Write every tile of a zoom range")
    _add_tiling_arguments(pyramid)
    pyramid.add_argument("--min-zoom", type=int, default=None, help="Override minimum zoom level")
    pyramid.add_argument("--max-zoom", type=int, default=None, help="Override maximum zoom level")
    pyramid.add_argument("--name", default=None, help="TileJSON name (default: input file stem)")
    pyramid.add_argument("--base-url", default="", help="Prefix for the TileJSON tile URL template")
    pyramid.add_argument(
        "--no-tilejson",
        action="store_true",
        help="Skip writing tilejson.json next to the tiles",
    )

    info = subcommands.add_parser("info", help="Describe a raster's geometry and bands")
    info.add_argument("input", type=Path, help="Raster to describe")
    info.add_argument("--json", action="store_true", help="Print the description as JSON")

    return parser


def _add_tiling_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to tiler configuration file (YAML or JSON)",
    )
    parser.add_argument("--input", type=Path, default=None, help="Source raster path")
    parser.add_argument("--out", type=Path, default=None, help="Output directory for tiles")
    parser.add_argument("--tile-size", type=int, default=None, help="Tile size in pixels (power of two)")
    parser.add_argument(
        "--tms",
        action="store_true",
        default=None,
        help="Flip requested rows between TMS and XYZ numbering",
    )
    parser.add_argument(
        "--format",
        dest="tile_format",
        choices=["png", "webp"],
        default=None,
        help="Tile image format",
    )
    parser.add_argument(
        "--resampling",
        choices=["nearest", "bilinear", "cubic", "lanczos", "average"],
        default=None,
        help="Resampling used when the raster is reprojected",
    )


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    settings = _resolve_settings(args) if args.command in {"tile", "pyramid"} else TilerConfig()
    configure_logging(
        level=args.log_level or settings.logging.level,
        json_logs=args.log_json or settings.logging.json,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )

    if args.command == "tile":
        return _handle_tile(args, settings)
    if args.command == "pyramid":
        return _handle_pyramid(args, settings)
    if args.command == "info":
        return _handle_info(args)
    parser.error("Unknown command")
    return 1


def _resolve_settings(args: argparse.Namespace) -> TilerConfig:
    if args.config is not None:
        config_path = args.config.resolve()
        if not config_path.exists():
            raise SystemExit(f"Configuration file not found: {config_path}")
        settings = load_config(config_path)
    else:
        settings = TilerConfig()

    settings.override(
        input_path=args.input.resolve() if args.input is not None else None,
        output_dir=args.out.resolve() if args.out is not None else None,
        tile_size=args.tile_size,
        tms=args.tms,
        tile_format=args.tile_format,
        resampling=args.resampling,
    )
    if settings.input_path is None:
        raise SystemExit("No input raster given; supply --input or input_path in --config")
    return settings


def _open_tiler(settings: TilerConfig) -> GDALTiler:
    return GDALTiler(
        settings.input_path,
        settings.output_dir,
        tile_size=settings.tile_size,
        tms=settings.tms,
        tile_format=settings.tile_format,
        backend=RasterioBackend(resampling=settings.resampling),
    )


def _handle_tile(args: argparse.Namespace, settings: TilerConfig) -> int:
    try:
        with _open_tiler(settings) as tiler:
            path = tiler.tile(args.z, args.x, args.y)
    except TilerError as exc:
        LOGGER.error("tile %s/%s/%s failed: %s", args.z, args.x, args.y, exc)
        return 1

    LOGGER.info("tile complete", extra={"tile": (args.z, args.x, args.y), "path": str(path)})
    print(path)
    return 0


def _handle_pyramid(args: argparse.Namespace, settings: TilerConfig) -> int:
    min_zoom: Optional[int] = args.min_zoom if args.min_zoom is not None else settings.min_zoom
    max_zoom: Optional[int] = args.max_zoom if args.max_zoom is not None else settings.max_zoom
    if min_zoom is not None and max_zoom is not None and max_zoom < min_zoom:
        raise SystemExit("--max-zoom must be greater than or equal to --min-zoom")

    try:
        with _open_tiler(settings) as tiler:
            builder = PyramidBuilder(tiler, name=args.name, base_url=args.base_url)
            summary = builder.build(
                min_zoom,
                max_zoom,
                tilejson=settings.tilejson and not args.no_tilejson,
            )
    except TilerError as exc:
        LOGGER.error("pyramid failed: %s", exc)
        return 1

    print(json.dumps(summary.to_dict(), indent=2))
    return 0


def _handle_info(args: argparse.Namespace) -> int:
    source_path = args.input.resolve()
    if not source_path.exists():
        raise SystemExit(f"Input raster not found: {source_path}")

    try:
        info = describe_raster(source_path)
    except TilerError as exc:
        LOGGER.error("Unable to describe raster: %s", exc)
        return 1

    if args.json:
        print(json.dumps(info.to_dict(), indent=2, default=str))
        return 0

    print(f"{info.path}: {info.driver} {info.width}x{info.height}, {len(info.bands)} band(s)")
    for band in info.bands:
        print(f"  band {band.index}: {band.data_type} {band.color_interpretation}")
    if info.geotransform is not None:
        print(f"  geotransform: {list(info.geotransform)}")
    if info.center is not None:
        print(f"  center: {info.center.latitude:.6f}, {info.center.longitude:.6f}")
        for name, corner in info.corners.items():
            print(f"  {name}: {corner.latitude:.6f}, {corner.longitude:.6f}")
    if not info.georeferenced:
        print("  not georeferenced")
    return 0
