"""LArReco command line entry point."""

import argparse
import os
import pathlib
import sys
from typing import List, Optional

from larreco.config import apply_overrides, load_config_file, set_nested_value
from larreco.config.loader import resolve_config_path
from larreco.errors import ConfigurationError
from larreco.parameters import RECO_OPTIONS
from larreco.utils.logger import logger
from larreco.version import __version__

__all__ = ["parse_command_line", "print_options", "build_config", "main"]

# Maps the command-line flags onto configuration keys
FLAG_MAPPING = {
    "settings": "files.pandora_settings",
    "events": "files.events",
    "drift_volumes": "files.drift_volumes",
    "geometry": "files.geometry",
    "stitching": "files.stitching_settings",
    "num_events": "events.num_events",
    "num_skip": "events.num_skip",
    "reco_option": "reco.option",
    "log_dir": "base.log_dir",
}


def build_parser():
    """Build the command-line argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Argument parser
    """
    parser = argparse.ArgumentParser(
        prog="larreco",
        description="LArReco - Multi-drift-volume LArTPC reconstruction driver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Reco options (-r):
  {", ".join(sorted(RECO_OPTIONS))} (case insensitive)

Examples:
  larreco -c config.yaml
  larreco -c config.yaml --set reco.should_run_slicing=false
  larreco -i settings.xml -d volumes.yaml -e events.npz -n 10 -N
""",
    )

    parser.add_argument("--version", action="version", version=f"LArReco {__version__}")
    parser.add_argument("-c", "--config", help="Path to the configuration file")
    parser.add_argument(
        "-i", "--settings", help="Path to the reconstruction settings file"
    )
    parser.add_argument("-e", "--events", help="Path to the event file")
    parser.add_argument(
        "-d", "--drift-volumes", help="Path to the drift volume description file"
    )
    parser.add_argument(
        "-g", "--geometry", help="Path to the detector gap description file"
    )
    parser.add_argument(
        "-s", "--stitching", help="Path to the stitching settings file"
    )
    parser.add_argument(
        "-n", "--num-events", type=int, help="Number of events to process"
    )
    parser.add_argument(
        "-k", "--num-skip", type=int, help="Number of events to skip"
    )
    parser.add_argument(
        "-N",
        "--display-event-number",
        action="store_true",
        help="Display the number of each processed event",
    )
    parser.add_argument(
        "-r", "--reco-option", help="Reco option (Full, AllHitsCR, AllHitsNu...)"
    )
    parser.add_argument(
        "-p",
        "--print-status",
        action="store_true",
        help="Print the current operation status",
    )
    parser.add_argument("--log-dir", help="Directory of the CSV event log")
    parser.add_argument(
        "--set",
        action="append",
        dest="config_overrides",
        metavar="KEY=VALUE",
        help="Override any config parameter using dot notation "
        "(e.g., --set reco.num_slice_workers=4). "
        "Can be used multiple times for multiple overrides.",
    )

    return parser


def parse_command_line(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse the command-line arguments.

    Parameters
    ----------
    argv : List[str], optional
        Arguments. If not specified, uses `sys.argv[1:]`

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    return build_parser().parse_args(argv)


def print_options():
    """Print the list of command-line options."""
    build_parser().print_help(sys.stdout)


def build_config(args: argparse.Namespace):
    """Build the configuration dictionary from the command-line arguments.

    The configuration file is loaded first, then the flags are applied, then
    the `--set` overrides.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments

    Returns
    -------
    cfg : dict
        Configuration dictionary
    parent_path : str
        Directory relative file paths in the configuration are resolved against
    """
    cfg, parent_path = {}, None
    if args.config is not None:
        cfg_file = resolve_config_path(args.config, current_dir=os.getcwd())
        cfg = load_config_file(cfg_file)
        parent_path = str(pathlib.Path(cfg_file).parent)

    # Command-line paths are relative to the working directory
    for dest, key in FLAG_MAPPING.items():
        value = getattr(args, dest)
        if value is not None:
            if key.startswith("files.") and not os.path.isabs(value):
                value = os.path.abspath(value)
            set_nested_value(cfg, key, value)

    if args.display_event_number:
        set_nested_value(cfg, "events.display_event_number", True)
    if args.print_status:
        set_nested_value(cfg, "events.print_status", True)

    if args.config_overrides:
        try:
            apply_overrides(cfg, args.config_overrides)
        except ValueError as err:
            raise ConfigurationError(str(err)) from err

    return cfg, parent_path


def main(argv: Optional[List[str]] = None) -> int:
    """Run the reconstruction from the command line.

    Parameters
    ----------
    argv : List[str], optional
        Arguments. If not specified, uses `sys.argv[1:]`

    Returns
    -------
    int
        Exit code: 1 if the application could not be set up, 0 otherwise
        (even when some events failed)
    """
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print_options()
        return 1

    args = parse_command_line(argv)

    # Imported here to keep `--help` and `--version` light
    from larreco.driver import Driver

    driver = None
    try:
        cfg, parent_path = build_config(args)
        driver = Driver(cfg, parent_path)
        driver.run()

    except ConfigurationError as err:
        logger.error("Configuration error: %s", err)
        return 1

    finally:
        if driver is not None:
            driver.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
