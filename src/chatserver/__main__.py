"""
=============================================================================
CHAT SERVER CLI ENTRY POINT
=============================================================================

    python -m chatserver

    python -m chatserver --port 4000

    python -m chatserver --max-clients 10 --log-level DEBUG

    CHAT_PORT=4000 python -m chatserver

Flags override environment variables, which override the defaults.

Exit codes:
    0   clean shutdown (SIGTERM / SIGINT)
    1   invalid configuration or the port could not be bound

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig, LOG_LEVELS
from .errors import ConfigError
from .server import create_server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatserver",
        description="Line-oriented multi-user TCP chat server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chatserver                        # Port 1234, 50 clients
  python -m chatserver --port 4000            # Custom port
  python -m chatserver --host 127.0.0.1       # Localhost only
  python -m chatserver --max-clients 10       # Smaller room
        """
    )

    # Defaults are None so we can tell "not given" from "given"
    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: $CHAT_HOST or 0.0.0.0)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: $CHAT_PORT or 1234)"
    )

    parser.add_argument(
        "--max-clients", "-m",
        type=int,
        default=None,
        help="Maximum simultaneous clients (default: $CHAT_MAX_CLIENTS or 50)"
    )

    parser.add_argument(
        "--max-message-length",
        type=int,
        default=None,
        help="Longest accepted line in characters (default: $CHAT_MAX_MESSAGE_LENGTH or 500)"
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: $CHAT_LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"chatserver {__version__}"
    )

    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flags that were given."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.max_clients is not None:
        config.max_clients = args.max_clients
    if args.max_message_length is not None:
        config.max_message_length = args.max_message_length
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        server = create_server(load_config(args))
        server.run()
    except (ConfigError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
