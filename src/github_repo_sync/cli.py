import argparse
import logging
import sys

from rich.console import Console
from rich.markup import escape

from . import daemon
from .config import Config
from .constants import APP_NAME, DEFAULT_CONFIG_PATH
from .exceptions import ConfigError

logger = logging.getLogger(APP_NAME)
err_console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    """Creates the argument parser for the service entry point."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Mirror every repository of a GitHub account into a local directory "
            "and keep the mirrors up to date."
        ),
    )
    parser.add_argument(
        "-config",
        "--config",
        dest="config",
        default=DEFAULT_CONFIG_PATH,
        metavar="PATH",
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})",
    )
    return parser


def log_startup(config: Config) -> None:
    """Logs the effective run parameters once at startup."""
    logger.info("Starting repository sync service...")
    logger.info(f"Repositories will be stored in: {config.repos_dir}")
    logger.info(
        f"Using {config.worker_count} workers with queue size {config.queue_size}"
    )
    logger.info(f"Polling interval: {config.poll_interval:g}s")


def main(argv: list[str] | None = None) -> None:
    """Main entry point: load config, then run until signalled.

    Exits with status 1 if the configuration cannot be loaded or a cycle hits
    a fatal error, and with status 0 after a graceful shutdown.
    """
    args = build_parser().parse_args(argv)

    try:
        config = Config.load(args.config)
    except ConfigError as e:
        err_console.print(
            f"[bold red]FATAL:[/bold red] Failed to load config: {escape(str(e))}"
        )
        sys.exit(1)

    daemon.setup_logging(config)
    log_startup(config)

    loop = daemon.RunLoop(config)
    loop.install_signal_handlers()
    sys.exit(loop.run())
