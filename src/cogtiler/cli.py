# src/cogtiler/cli.py

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from PIL import Image

from .config import ProviderOptions
from .exceptions import CogTilerError
from .provider import CogTileProvider
from .raster.io import open_raster

def setup_logging(level: int = logging.INFO) -> None:
    """
    Configures the standard logging format and level for the command-line interface.

    Args:
        level (int): The logging threshold level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

def describe_raster(path: str) -> Dict[str, Any]:
    """
    Collects the metadata a provider relies on into a JSON-friendly dictionary.

    Args:
        path (str): The raster file to inspect.
    """
    source = open_raster(path)
    return {
        "path": source.path,
        "crs": str(source.crs) if source.crs else None,
        "epsg": source.epsg,
        "bounds": list(source.bounds),
        "bands": source.count,
        "dtype": source.dtype,
        "nodata": source.nodata,
        "row_reversed": source.row_reversed,
        "color_interp": list(source.color_interp),
        "statistics": {str(b): list(v) for b, v in source.statistics.items()},
        "levels": [
            {"index": lvl.index, "width": lvl.width, "height": lvl.height,
             "block": [lvl.block_width, lvl.block_height]}
            for lvl in source.levels
        ]
    }

def build_render_options(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Translates render flags into the options understood by RenderSpec.from_dict.
    """
    render: Dict[str, Any] = {"resample_method": args.resample}
    if args.nodata is not None:
        render["nodata"] = args.nodata

    if args.rgb:
        render["convert_to_rgb"] = True
        return render

    single: Dict[str, Any] = {"band": args.band, "type": args.scale_type, "mode": args.interpolation}
    if args.color_scale:
        single["color_scale"] = args.color_scale
    if args.expression:
        single["expression"] = args.expression
    if args.domain:
        single["domain"] = args.domain
    render["single"] = single
    return render

async def render_to_file(args: argparse.Namespace) -> Optional[Path]:
    """
    Renders a single tile and writes it as a PNG.

    Returns:
        Optional[Path]: The written file, or None when the tile is outside the pyramid.
    """
    options = ProviderOptions.from_env(**_option_overrides(args))
    provider = await CogTileProvider.from_path(
        args.path, render=build_render_options(args), options=options, auto_projection=True
    )
    try:
        image = await provider.request_image(args.x, args.y, args.z)
    finally:
        provider.destroy()

    if image is None:
        logging.warning(f"Tile ({args.x}, {args.y}, {args.z}) is outside the renderable range.")
        return None

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(image).save(output)
    logging.info(f"Wrote {image.shape[1]}x{image.shape[0]} tile to {output}")
    return output

async def pick(args: argparse.Namespace) -> Optional[Dict[int, float]]:
    options = ProviderOptions.from_env(**_option_overrides(args))
    provider = await CogTileProvider.from_path(
        args.path, render={"resample_method": "nearest"}, options=options, auto_projection=True
    )
    try:
        return await provider.pick_value(args.x, args.y, args.z, args.lon, args.lat)
    finally:
        provider.destroy()

def _option_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if getattr(args, "tile_size", None):
        overrides["tile_size"] = args.tile_size
    if getattr(args, "workers", None) is not None:
        overrides["workers"] = args.workers
    if getattr(args, "cpu", False):
        overrides["accelerated"] = False
    return overrides

def _add_tile_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", type=str, help="GeoTIFF or Cloud-Optimized GeoTIFF to read.")
    parser.add_argument("--x", type=int, default=0, help="Tile column.")
    parser.add_argument("--y", type=int, default=0, help="Tile row.")
    parser.add_argument("--z", type=int, default=0, help="Zoom level.")
    parser.add_argument("--tile-size", type=int, default=None, help="Output tile size in pixels.")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads, 0 runs synchronously.")

def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cogtiler",
        description="Render map tiles from Cloud-Optimized GeoTIFFs."
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging threshold. Defaults to INFO."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    info_parser = subparsers.add_parser("info", help="Prints raster metadata as JSON.")
    info_parser.add_argument("path", type=str, help="Raster file to inspect.")

    render_parser = subparsers.add_parser("render", help="Renders one tile to a PNG file.")
    _add_tile_arguments(render_parser)
    render_parser.add_argument("-o", "--output", type=str, default="tile.png", help="Output PNG path.")
    render_parser.add_argument("--band", type=int, default=1, help="Band rendered in single band mode.")
    render_parser.add_argument("--color-scale", type=str, default=None, help="Named color scale.")
    render_parser.add_argument("--expression", type=str, default=None, help="Band expression, e.g. '(b2-b1)/(b2+b1)'.")
    render_parser.add_argument("--domain", type=float, nargs=2, metavar=("MIN", "MAX"), default=None,
                               help="Value range mapped onto the color scale.")
    render_parser.add_argument("--scale-type", choices=["continuous", "discrete"], default="continuous")
    render_parser.add_argument("--interpolation", choices=["rgb", "hsl", "hslLong", "lab"], default="rgb")
    render_parser.add_argument("--resample", choices=["nearest", "bilinear"], default="nearest")
    render_parser.add_argument("--nodata", type=float, default=None, help="Override the raster's no-data value.")
    render_parser.add_argument("--rgb", action="store_true", help="Compose the raster's own red, green and blue bands.")
    render_parser.add_argument("--cpu", action="store_true", help="Disable the accelerated shader pipeline.")

    pick_parser = subparsers.add_parser("pick", help="Prints band values at a geographic position.")
    _add_tile_arguments(pick_parser)
    pick_parser.add_argument("--lon", type=float, required=True, help="Longitude in degrees.")
    pick_parser.add_argument("--lat", type=float, required=True, help="Latitude in degrees.")

    return parser

def main(argv: Optional[List[str]] = None) -> int:
    """
    Parses command-line arguments and routes execution to the matching command.
    """
    args = create_parser().parse_args(argv)
    setup_logging(getattr(logging, args.log_level))

    try:
        if args.command == "info":
            print(json.dumps(describe_raster(args.path), indent=2))
        elif args.command == "render":
            if asyncio.run(render_to_file(args)) is None:
                return 2
        elif args.command == "pick":
            values = asyncio.run(pick(args))
            print(json.dumps({str(k): v for k, v in (values or {}).items()}))
    except (CogTilerError, FileNotFoundError) as e:
        logging.error(str(e))
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
