"""Argument parsing for the whatis command line."""

import argparse

from . import __version__


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="whatis",
        description="Quickly show the description of a crate on crates.io",
        add_help=True,
    )

    parser.add_argument("name",
                        metavar="crate",
                        help="The crate to look up",
                        type=str)
    parser.add_argument("-v", "--version",
                        dest="VERSION",
                        metavar="semver",
                        help="Which version of the specified crate should be looked up",
                        action="store",
                        type=str)
    parser.add_argument("-d", "--deps",
                        dest="DEPS",
                        help="Show descriptions of (direct) dependencies of the provided crate",
                        action="store_true")
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to a YAML config file",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("-V", "--program-version",
                        action="version",
                        version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)
