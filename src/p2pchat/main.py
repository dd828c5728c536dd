"""
P2P Chat - Main entry point for the application.

Created by orpheus497
"""

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__, join_code
from .config import Config
from .constants import (
    APP_NAME,
    CONFIG_FILENAME,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILENAME,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    LOGS_DIR,
)
from .discovery import get_local_ipv6_addresses
from .errors import P2PChatError
from .qr_code import create_join_code_qr


def default_data_dir() -> Path:
    """Platform-specific default data directory."""
    if sys.platform == "win32":
        data_dir = Path(os.getenv("APPDATA", "~")) / "P2PChat"
    elif sys.platform == "darwin":
        data_dir = Path.home() / "Library" / "Application Support" / "P2PChat"
    else:
        data_dir = Path.home() / ".p2pchat"

    return data_dir.expanduser().resolve()


def setup_logging(config: Config, data_dir: Path, debug: bool = False) -> logging.Logger:
    """
    Configure the package logger from the logging section of the config.

    Args:
        config: Loaded configuration
        data_dir: Data directory; log files go to its logs/ subdirectory
        debug: Force DEBUG level

    Returns:
        The configured package logger
    """
    level_name = str(config.get("logging", "level", "INFO")).upper()
    level = logging.DEBUG if debug else getattr(logging, level_name, logging.INFO)

    package_logger = logging.getLogger("p2pchat")
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    if config.get("logging", "file_logging", True):
        log_dir = data_dir / LOGS_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILENAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    if config.get("logging", "console_logging", False):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    return package_logger


def print_addresses(console: Console) -> int:
    """Print the local IPv6 addresses a peer could reach."""
    addresses = get_local_ipv6_addresses()
    if not addresses:
        console.print("[yellow]No routable IPv6 address found.[/]")
        return 1

    table = Table(title="Local IPv6 addresses")
    table.add_column("#", justify="right")
    table.add_column("Address")
    for index, address in enumerate(addresses, start=1):
        table.add_row(str(index), address)

    console.print(table)
    return 0


def print_join_code(console: Console, address: str, port: str) -> int:
    """Print the join code and QR code for an address and port."""
    try:
        code = join_code.encode(address, int(port))
        art = create_join_code_qr(code)
    except ValueError as e:
        console.print(f"[red]Cannot build join code:[/] {escape(str(e))}")
        return 2
    except P2PChatError as e:
        console.print(f"[red]Cannot build QR code:[/] {escape(e.message)}")
        return 1

    console.print(f"Join code: [bold]{code}[/]")
    console.print(art, markup=False, highlight=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="P2P Chat - Direct IPv6 chat between two hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  p2pchat                               # Start the chat UI
  p2pchat --port 5000                   # Host on a fixed port
  p2pchat --join AAAAAAAAAAAAAAAAAAAAAROI # Join a peer by join code
  p2pchat --join "[2001:db8::1]:5000"   # Join a peer by address
  p2pchat --addresses                   # List shareable addresses
  p2pchat --show-code 2001:db8::1 5000  # Print a join code and QR

Created by orpheus497
        """,
    )

    parser.add_argument("--version", action="version", version=f"{APP_NAME} {__version__}")

    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Data directory for configuration and logs",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listen port when hosting (default: from config, 0 = any free port)",
    )

    parser.add_argument(
        "--join",
        type=str,
        default=None,
        metavar="INPUT",
        help="Join code or [address]:port to connect to on startup",
    )

    parser.add_argument(
        "--addresses",
        action="store_true",
        help="List local IPv6 addresses and exit",
    )

    parser.add_argument(
        "--show-code",
        nargs=2,
        metavar=("ADDRESS", "PORT"),
        default=None,
        help="Print the join code and QR code for ADDRESS and PORT, then exit",
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for P2P Chat."""
    args = build_parser().parse_args(argv)
    console = Console()

    if args.addresses:
        return print_addresses(console)

    if args.show_code:
        return print_join_code(console, *args.show_code)

    if args.data_dir:
        data_dir = Path(args.data_dir).expanduser().resolve()
    else:
        data_dir = default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    try:
        config = Config(data_dir / CONFIG_FILENAME)
    except P2PChatError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        return 1

    if args.port is not None:
        config.set("network", "port", args.port)

    setup_logging(config, data_dir, args.debug)
    logging.getLogger(__name__).info(f"{APP_NAME} {__version__} starting, data dir {data_dir}")

    # Imported here so --addresses/--show-code do not pay for Textual start-up.
    from .ui import ChatApp

    ChatApp(config, initial_peer=args.join).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
