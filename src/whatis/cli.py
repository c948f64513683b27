"""Command line entry point: print a crate's description (and its dependencies')."""

import logging
import sys

from .args import parse_args
from .common.logging_utils import configure_logging, extra_context, is_debug_enabled
from .config import Config
from .constants import Constants, ExitCodes
from .errors import (
    ConfigError,
    FormatError,
    InvalidConstraint,
    InvalidVersion,
    LockContention,
    NetworkError,
    NotFound,
    WhatisError,
)
from .query import QueryOrchestrator

logger = logging.getLogger(__name__)

_EXIT_CODES = (
    (NotFound, ExitCodes.NOT_FOUND),
    (NetworkError, ExitCodes.CONNECTION_ERROR),
    (InvalidVersion, ExitCodes.INVALID_VERSION),
    (InvalidConstraint, ExitCodes.INVALID_CONSTRAINT),
    (FormatError, ExitCodes.FORMAT_ERROR),
    (LockContention, ExitCodes.LOCK_CONTENTION),
    (ConfigError, ExitCodes.CONFIG_ERROR),
    (OSError, ExitCodes.FILE_ERROR),
)


def exit_code_for(exc):
    """Map a core or filesystem error to the process exit code."""
    for kind, code in _EXIT_CODES:
        if isinstance(exc, kind):
            return code
    return ExitCodes.FILE_ERROR


def format_record(record, bullet=False):
    """Render ``name @ version: description`` for one package record."""
    description = (record.description or Constants.NO_DESCRIPTION).rstrip()
    line = f"{record.name} @ {record.version}: {description}"
    return f"- {line}" if bullet else line


def render(result, include_deps=False):
    """Return the printable lines for a ``DescribeResult``."""
    lines = [format_record(result.main)]
    if include_deps:
        lines.append("\n # Dependencies:\n")
        lines.extend(format_record(dep, bullet=True) for dep in result.deps)
    return lines


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main", target=args.name),
        )

    try:
        config = Config.load(args.CONFIG)
        with QueryOrchestrator.from_config(config) as orchestrator:
            result = orchestrator.describe(args.name, args.VERSION, include_deps=args.DEPS)
    except (WhatisError, OSError) as exc:
        logger.error("%s", exc)
        sys.exit(exit_code_for(exc).value)

    for line in render(result, include_deps=args.DEPS):
        print(line)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
