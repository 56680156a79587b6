"""
pv-whisper CLI

Entry point for the pv-whisper command.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pv_whisper import __version__
from pv_whisper.bridge import run_server
from pv_whisper.client import EXIT_ERROR, EXIT_USAGE, client_event, client_status
from pv_whisper.config import Config, ConfigError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging"""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=sys.stdout,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog="pv-whisper",
        description="Whisper channel for proximity voice chat",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pv-whisper {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to config file (default: config.yml in current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the bridge daemon",
    )
    serve_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    # client command
    client_parser = subparsers.add_parser(
        "client",
        help="Client commands",
    )
    client_subparsers = client_parser.add_subparsers(
        dest="client_command",
        help="Client subcommands",
    )

    client_subparsers.add_parser(
        "status",
        help="Show whisper channel status",
    )

    event_parser = client_subparsers.add_parser(
        "event",
        help="Send a host event and print the resulting actions",
    )
    event_parser.add_argument(
        "event",
        help="Event name (channel_register, voice_start, disconnected, ...)",
    )
    event_parser.add_argument(
        "data",
        nargs="?",
        help="Event data as a JSON object",
    )

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return EXIT_USAGE

    if parsed.command == "serve":
        setup_logging(verbose=parsed.verbose)
        try:
            run_server(parsed.config, verbose=parsed.verbose)
        except ConfigError as e:
            logger.error(f"Cannot start bridge: {e}")
            return EXIT_ERROR
        return 0

    elif parsed.command == "client":
        if not parsed.client_command:
            parser.parse_args(["client", "--help"])
            return EXIT_USAGE

        # Minimal logging for client
        logging.basicConfig(
            level=logging.ERROR,
            format="%(message)s",
            stream=sys.stderr,
        )

        try:
            config = Config.load(parsed.config)
        except ConfigError as e:
            logger.error(str(e))
            return EXIT_ERROR

        if parsed.client_command == "status":
            return client_status(config)

        elif parsed.client_command == "event":
            return client_event(config, parsed.event, parsed.data)

        else:
            print(f"Unknown client command: {parsed.client_command}", file=sys.stderr)
            return EXIT_USAGE

    else:
        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
