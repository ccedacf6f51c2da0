"""CLI for Registry Sync."""

import argparse
import logging
from importlib.metadata import PackageNotFoundError, version

import structlog

from .config import DEFAULT_CONFIG, Config
from .exceptions import ConfigError, EngineError
from .factory import Factory


def _version() -> str:
    try:
        return version("registry-sync")
    except PackageNotFoundError:
        return "dev"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="registry-sync",
        description="Mirror container images from one registry to another.",
        add_help=False,
    )
    parser.add_argument(
        "-c",
        "--config",
        "-config",
        help="config file path or http(s) URL",
        default=DEFAULT_CONFIG,
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
        default=False,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single synchronization cycle and exit",
        default=False,
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {_version()}",
    )
    parser.add_argument(
        "-h",
        "--help",
        "-help",
        action="store_true",
        help="Show version and usage, then exit",
        default=False,
    )
    result = parser.parse_args(argv)
    if result.help:
        print(f"Version: {_version()}")
        parser.print_help()
        parser.exit()
    return result


def _configure_logging(*, debug: bool) -> None:
    log_level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level)
    )


def main(argv: list[str] | None = None) -> int:
    """Mirror images until killed."""
    args = _parse_args(argv)
    _configure_logging(debug=args.debug)
    logger = structlog.get_logger("registry_sync")

    try:
        cfg = Config.load(args.config)
    except ConfigError as exc:
        logger.critical(str(exc))
        return 1

    try:
        with Factory.standalone() as factory:
            daemon = factory.create_daemon(cfg, args.config)
            if args.once:
                result = daemon.run(max_cycles=1)
                return 0 if result.ok else 1
            daemon.run()
    except EngineError as exc:
        logger.critical(str(exc))
        return 1
    return 0
