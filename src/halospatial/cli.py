import argparse
import sys
import logging
from pathlib import Path
from typing import List, Optional, Dict

from halospatial.exceptions import HalospatialError
from halospatial.settings import Settings, load_settings

log = logging.getLogger("halospatial.cli")

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

def _parse_filters(items: Optional[List[str]]) -> Dict[str, str]:
    filters = {}
    for item in items or []:
        column, sep, value = item.partition("=")
        if not sep or not column:
            raise argparse.ArgumentTypeError(f"Region filter must look like COLUMN=VALUE, got {item!r}")
        filters[column] = value
    return filters

def _parse_indices(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [name.strip() for name in value.split(",") if name.strip()]

def write_previews(result, folder: Path) -> List[Path]:
    """
    Renders every index layer (and the true-colour composite) as PNG quicklooks.

    Args:
        result (PipelineResult): Output of run_pipeline.
        folder (Path): Destination directory, created if missing.

    Returns:
        List[Path]: The written image files.
    """
    from matplotlib import image as mpimg
    from halospatial.display import colorize
    from halospatial.pipeline import render_layers

    class _PngSink:
        def __init__(self):
            self.written = []

        def add_layer(self, source, config, name, shown=True, key=""):
            path = folder / f"{key or name}.png"
            mpimg.imsave(path, colorize(source, config))
            self.written.append(path)

    folder.mkdir(parents=True, exist_ok=True)
    sink = _PngSink()
    render_layers(result, sink)
    log.info(f"Wrote {len(sink.written)} preview image(s) to {folder}")
    return sink.written

def compute_scene(args: argparse.Namespace, settings: Settings) -> None:
    """
    Runs mask, scaling and index computation for one scene and exports the stacked indices.

    Args:
        args (argparse.Namespace): Parsed `compute` arguments.
        settings (Settings): Environment defaults for unspecified options.
    """
    from halospatial.export import ExportConfig
    from halospatial.pipeline import run_pipeline, export_indices
    from halospatial.raster.engine import DispatchConfig
    from halospatial.sensors import SensorCatalog
    from halospatial.vector import load_region

    sensor = SensorCatalog().get(args.sensor or settings.sensor)
    params = {"SAVI": {"L": args.savi_l}} if args.savi_l is not None else None
    indices = _parse_indices(args.indices)
    if params and indices is not None and "SAVI" not in indices:
        log.warning("--savi-l given but SAVI is not among the requested indices; ignoring it.")
        params = None

    config = DispatchConfig(
        mode=args.mode,
        tile_size=args.tile_size or settings.tile_size,
        workers=args.workers or settings.workers
    )

    scene = args.scene
    if Path(scene).is_dir():
        from halospatial.raster.io import load_scene
        scene = load_scene(scene)

    result = run_pipeline(scene, sensor=sensor, indices=indices, params=params, config=config)

    for name, stats in result.summary().items():
        log.info(f"{name}: min={stats['min']:.4f} max={stats['max']:.4f} mean={stats['mean']:.4f}")

    region = None
    if args.region:
        region = load_region(args.region, filters=_parse_filters(args.region_filter))

    export = ExportConfig(
        folder=args.folder or settings.export_folder,
        file_name_prefix=args.prefix or Path(args.scene).stem + "_indices",
        region=region,
        scale=args.scale,
        crs=args.crs,
        max_pixels=args.max_pixels
    )
    path = export_indices(result, export)
    log.info(f"Export written to {path}")

    if args.preview:
        write_previews(result, Path(args.preview))

def list_indices() -> None:
    from halospatial.raster.indices import IndexCatalog

    for index in IndexCatalog():
        params = ", ".join(f"{k}={v}" for k, v in index.params.items())
        suffix = f"  [{params}]" if params else ""
        print(f"{index.name:<6} {index.description or index.formula}{suffix}")

def list_sensors() -> None:
    from halospatial.sensors import SensorCatalog

    for name in SensorCatalog().names:
        profile = SensorCatalog().get(name)
        print(
            f"{profile.collection_id}  qa={profile.qa_band} bits={list(profile.mask_bits)} "
            f"gain={profile.gain} offset={profile.offset}"
        )

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="halospatial",
        description="Soil salinity spectral indices from Landsat surface reflectance scenes"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enables debug logging.")
    parser.add_argument("--env-file", type=str, default=None, help="Explicit .env file to read settings from.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compute_parser = subparsers.add_parser(
        "compute",
        help="Masks, scales and computes salinity indices for a scene, then exports them as GeoTIFF."
    )
    compute_parser.add_argument("scene", type=str, help="Multi-band scene with band descriptions (SR_B2.., QA_PIXEL), or a folder of per-band product files.")
    compute_parser.add_argument("--sensor", type=str, default=None, help="Collection id or alias (landsat8, landsat9).")
    compute_parser.add_argument("--indices", type=str, default=None, help="Comma separated index names. Defaults to all.")
    compute_parser.add_argument("--savi-l", type=float, default=None, help="Soil brightness factor L for SAVI.")
    compute_parser.add_argument("--region", type=str, default=None, help="Vector file with the area of interest.")
    compute_parser.add_argument(
        "--region-filter",
        action="append",
        default=None,
        metavar="COLUMN=VALUE",
        help="Attribute filter for region features; may be repeated."
    )
    compute_parser.add_argument("--folder", type=str, default=None, help="Export folder.")
    compute_parser.add_argument("--prefix", type=str, default=None, help="Export file name prefix.")
    compute_parser.add_argument("--scale", type=float, default=None, help="Output pixel size in CRS units.")
    compute_parser.add_argument("--crs", type=str, default=None, help="Output CRS, e.g. EPSG:32648.")
    compute_parser.add_argument("--max-pixels", type=float, default=1e10, help="Refuse exports larger than this.")
    compute_parser.add_argument(
        "--mode",
        choices=["auto", "in_memory", "tiled"],
        default="auto",
        help="Processing strategy. Defaults to auto."
    )
    compute_parser.add_argument("--workers", type=int, default=None, help="Threads for tiled processing.")
    compute_parser.add_argument("--tile-size", type=int, default=None, help="Block size in pixels.")
    compute_parser.add_argument("--preview", type=str, default=None, help="Folder for PNG quicklooks of each layer.")

    subparsers.add_parser("indices", help="Lists the available spectral indices.")
    subparsers.add_parser("sensors", help="Lists the supported sensor profiles.")

    return parser

def main(argv: Optional[List[str]] = None) -> None:
    """
    Parses command-line arguments and routes execution to the appropriate subroutines.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.env_file)
    except HalospatialError as e:
        setup_logging()
        log.error(f"Invalid environment configuration: {e}")
        sys.exit(1)

    level = logging.DEBUG if args.verbose else logging.getLevelName(settings.log_level)
    setup_logging(level)

    if args.command == "indices":
        list_indices()
    elif args.command == "sensors":
        list_sensors()
    elif args.command == "compute":
        try:
            compute_scene(args, settings)
        except (HalospatialError, FileNotFoundError, argparse.ArgumentTypeError) as e:
            log.error(f"{type(e).__name__}: {e}")
            sys.exit(1)

if __name__ == "__main__":
    main()
