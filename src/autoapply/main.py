"""
Command-line entry point for autoapply.

Usage:
    autoapply                      # uses ./autoapply.yaml or ./autoapply.yml
    autoapply path/to/config.yaml
    autoapply --debug --loops 1 config.yaml
"""

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from . import __version__
from .config import find_config_file, load_config
from .errors import AutoapplyError
from .loop import IterationLoop

logger = logging.getLogger("autoapply")

EXIT_OK = 0
EXIT_NO_CONFIG = 1
EXIT_ERROR = 5
EXIT_INTERRUPTED = 130

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_log_level(debug: bool = False) -> int:
    """Level from --debug, else the LOG_LEVEL environment variable."""
    if debug:
        return logging.DEBUG
    name = os.environ.get("LOG_LEVEL", "info").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=resolve_log_level(debug),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
        force=True,
    )


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autoapply",
        description="Run commands on a timed loop in fresh scratch directories",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Show debugging output"
    )
    parser.add_argument(
        "--loops",
        type=positive_int,
        default=None,
        metavar="N",
        help="Stop after N loop iterations (default: run forever)"
    )
    parser.add_argument(
        "config",
        nargs="?",
        metavar="<config-file>",
        help="Configuration file to use (default: autoapply.yaml or autoapply.yml)"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)

    config_file = args.config or find_config_file()
    if not config_file:
        logger.error("no configuration file found and none given!")
        return EXIT_NO_CONFIG

    try:
        config = load_config(config_file)
        IterationLoop(config, logger=logger, debug=args.debug).run(max_iterations=args.loops)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return EXIT_INTERRUPTED
    except AutoapplyError as e:
        if args.debug:
            logger.exception(str(e))
        else:
            logger.error(str(e) or "unknown error!")
        return EXIT_ERROR
    except Exception as e:
        if args.debug:
            logger.exception(f"Unexpected error: {e}")
        else:
            logger.error(str(e) or "unknown error!")
        return EXIT_ERROR

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
