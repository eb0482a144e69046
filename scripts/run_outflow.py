#!/usr/bin/env python3
"""
Ice shelf meltwater outflow - run a simulation from a preset or YAML config.

Usage:
    python scripts/run_outflow.py --preset point-source
    python scripts/run_outflow.py --config config/examples/box_model_2d.yaml

Examples:
    # Point source, default 7-day run
    python scripts/run_outflow.py --preset point-source

    # Line source for half a day with a tighter time-step ceiling
    python scripts/run_outflow.py --preset line-source --end-time "12 hours" --max-dt 10

    # YAML config with VTK output in a custom directory
    python scripts/run_outflow.py -c config/examples/line_source.yaml --output-format vtk -o output/line
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from meltflow.config import PRESETS, apply_cli_overrides, from_dict, load_yaml, save_yaml
from meltflow.errors import ConfigurationError, SolverFault
from meltflow.solvers import build_simulation
from meltflow.utils import setup_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Simulate meltwater outflow from beneath an Antarctic ice shelf",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument('--config', '-c', help="YAML config file")
    source.add_argument('--preset', '-p', choices=sorted(PRESETS),
                        help="Built-in scenario (default: point-source)")

    # Time stepping
    parser.add_argument('--end-time', type=str, default=None,
                        help='Run length, e.g. "7 days" or 3600')
    parser.add_argument('--cfl', type=float, default=None,
                        help="Target advective CFL")
    parser.add_argument('--max-dt', type=float, default=None,
                        help="Upper bound on the time step [s]")
    parser.add_argument('--n-inner', type=int, default=None,
                        help="Solver steps per outer iteration")

    # Output
    parser.add_argument('--output-dir', '-o', default=None,
                        help="Output directory")
    parser.add_argument('--output-format', choices=['npz', 'vtk'], default=None,
                        help="Output file format")
    parser.add_argument('--save-config', default=None,
                        help="Write the resolved configuration to this YAML file")
    parser.add_argument('--log-level', default=None,
                        help="DEBUG, INFO, WARNING, ...")
    parser.add_argument('--log-file', default=None,
                        help="Also write the log to this file")

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        if args.config:
            config = load_yaml(args.config)
        else:
            config = from_dict({'preset': args.preset or 'point-source'})
        config = apply_cli_overrides(config, args)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    setup_logging(level=config.logging.level, show_time=config.logging.show_time,
                  log_file=config.logging.file)

    if args.save_config:
        save_yaml(config, args.save_config)
        logger.info(f"Configuration written to {args.save_config}")

    try:
        simulation = build_simulation(config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        simulation.run()
    except SolverFault as e:
        logger.error(f"Solver failed: {e}")
        return 1

    logger.info(f"Done! Results in: {config.output.directory}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
