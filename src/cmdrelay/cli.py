"""Command-line interface for the cmdrelay server.

Parses the listen host, listen port and log verbosity, then starts the
HTTP/WebSocket relay.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Values are kept as strings; invalid ones are reported and replaced
    with defaults when the settings are built.
    """
    parser = argparse.ArgumentParser(
        prog="cmdrelay",
        description="Relay HTTP POST /command payloads to connected WebSocket clients",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/cmdrelay.yaml)",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Interface to listen on (default: localhost)",
    )
    parser.add_argument(
        "--port", type=str, default=None,
        help="Port to listen on, 1-65535 (default: 9772)",
    )
    parser.add_argument(
        "--log", type=str, default=None, metavar="LEVEL",
        help="Log verbosity: debug, info, error or silent (default: info)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging (overrides --log)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the cmdrelay CLI."""
    args = parse_args(argv)

    from cmdrelay.config.settings import LogLevel, load_settings
    from cmdrelay.utils.logging import setup_logging

    settings = load_settings(
        args.config,
        host=args.host,
        port=args.port,
        log_level=LogLevel.DEBUG.value if args.verbose else args.log,
    )
    setup_logging(settings.logging)

    from cmdrelay.relay.server import serve

    logger.debug(
        "Starting relay on %s:%d", settings.server.host, settings.server.port
    )
    serve(settings)


if __name__ == "__main__":
    main()
