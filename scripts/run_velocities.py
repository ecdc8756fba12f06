"""
Surface velocity workflow

Subcommands:
    grid      Velocities of every occupied grid cell between a capture and the next one
    samples   Density-gated adaptive samples between a capture and the next one
    register  Register two captures and save the 4x4 transform
"""

import sys
import argparse
import logging
from pathlib import Path

import numpy as np

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_velocity.alignment.transform import save_transform_matrix
from surface_velocity.exceptions import SurfaceVelocityError
from surface_velocity.utils.config import load_config, AppConfig
from surface_velocity.utils.export import (
    export_velocities_to_laz,
    write_samples_json,
    write_velocities_csv,
)
from surface_velocity.utils.logging import setup_logger, set_package_level
from surface_velocity.velocity.pipeline import VelocityPipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Surface Velocity Workflow")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Directory for results (overrides paths.output_dir)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Registration threads (overrides parallel.n_workers)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    grid = sub.add_parser("grid", help="Grid velocities from a fixed capture")
    grid.add_argument("fixed", type=str, help="Fixed capture; the moving capture is found beside it")
    grid.add_argument("--cell-size", type=float, default=None, help="Override grid.cell_size")

    samples = sub.add_parser("samples", help="Adaptive samples from a fixed capture")
    samples.add_argument("fixed", type=str, help="Fixed capture; the moving capture is found beside it")
    samples.add_argument("--step", type=float, default=None, help="Override sampling.step")
    samples.add_argument(
        "--locations",
        type=str,
        default=None,
        help="Optional CSV of x,y sampling locations (defaults to a regular grid over the overlap)",
    )

    register = sub.add_parser("register", help="Register two captures")
    register.add_argument("fixed", type=str)
    register.add_argument("moving", type=str)
    register.add_argument("--out", type=str, default=None, help="Transform file (defaults to <output_dir>/transform.txt)")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    cfg: AppConfig = load_config(args.config)
    if args.output_dir:
        cfg.paths.output_dir = args.output_dir
    if args.workers is not None:
        cfg.parallel.n_workers = args.workers

    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logger(__name__, level=log_level, log_file=cfg.logging.file)
    set_package_level(log_level)

    output_dir = Path(cfg.paths.output_dir)

    try:
        if args.command == "grid":
            if args.cell_size is not None:
                cfg.grid.cell_size = args.cell_size
            pipeline = VelocityPipeline(cfg)
            velocities = pipeline.velocities_from_path(args.fixed)
            logger.info(f"Found {len(velocities)} velocities")
            stem = Path(args.fixed).stem
            if cfg.output.velocities_csv:
                write_velocities_csv(velocities, output_dir / f"{stem}_velocities.csv")
            if cfg.output.velocities_laz:
                export_velocities_to_laz(
                    velocities,
                    output_dir / f"{stem}_velocities.laz",
                    source_laz_path=args.fixed,
                )

        elif args.command == "samples":
            if args.step is not None:
                cfg.sampling.step = args.step
            locations = None
            if args.locations:
                locations = np.loadtxt(args.locations, delimiter=",", ndmin=2)
            pipeline = VelocityPipeline(cfg)
            samples = pipeline.samples_from_path(args.fixed, locations)
            registered = sum(1 for s in samples if s.registration is not None)
            logger.info(f"Found {len(samples)} samples ({registered} registered)")
            if cfg.output.samples_json:
                write_samples_json(samples, output_dir / f"{Path(args.fixed).stem}_samples.json")

        elif args.command == "register":
            pipeline = VelocityPipeline(cfg)
            outcome = pipeline.register_files(args.fixed, args.moving)
            out = Path(args.out) if args.out else output_dir / "transform.txt"
            out.parent.mkdir(parents=True, exist_ok=True)
            save_transform_matrix(outcome.as_matrix(), str(out))

    except SurfaceVelocityError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
