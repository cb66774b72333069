#!/usr/bin/env python

import argparse
from importlib.resources import files
from pathlib import Path

from jdsd.config import JdsdConfiguration
from jdsd.io_utils import log_and_exit, setup_logging
from jdsd.main import main

DEFAULT_CONFIG_FP = files(__package__ or "jdsd") / "default_configuration.toml"


def cli_main(argv=None):
    parser = argparse.ArgumentParser(
        prog="jdsd", description="Compute Stokesian dynamics velocities of suspended spheres."
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Set the configuration file of the solver.",
        type=Path,
        default=None,
    )
    parser.add_argument(
        "-p",
        "--particles",
        help="Particle file (.npy or text) with rows: x y z radius fx fy fz tx ty tz.",
        type=Path,
        required=True,
    )
    parser.add_argument(
        "-o", "--output", help="Output directory to store the results in.", type=Path, default=None
    )
    args = parser.parse_args(argv)
    config_fp = DEFAULT_CONFIG_FP if args.config is None else args.config
    output = args.output if args.output is not None else Path("output")

    try:
        config = JdsdConfiguration.from_toml(config_fp, args.particles)
        setup_logging(output_dir=output / "logs", debug_enabled=config.output.debug_log)
        parameters = config.parameters
    except (OSError, ValueError) as error:
        log_and_exit(str(error))

    return main(**parameters, output=output)


if __name__ == "__main__":
    cli_main()
