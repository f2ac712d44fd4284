"""
=============================================================================
KNOCK-KNOCK SERVER CLI ENTRY POINT
=============================================================================

    # Run with protocol defaults (0.0.0.0:30000, backlog 10)
    python -m knockserver

    # Loopback only, custom port
    python -m knockserver --host 127.0.0.1 --port 4000

    # Try it
    telnet 127.0.0.1 30000

Exit codes:
    0   stopped with Ctrl+C (SIGINT) or SIGTERM
    1   the listening socket could not be set up, or accept() failed

=============================================================================
"""

import argparse
import sys

from . import __version__
from .server import KnockKnockServer
from .config import ServerConfig, LOG_LEVELS
from .core import ListenerError


def main(argv=None):
    """Main CLI entry point."""
    defaults = ServerConfig()

    parser = argparse.ArgumentParser(
        prog="knockserver",
        description="Internet Knock-Knock Protocol server",
    )

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )

    parser.add_argument(
        "--backlog", "-b",
        type=int,
        default=defaults.backlog,
        help=f"Listen backlog (default: {defaults.backlog})"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default=defaults.log_level,
        help=f"Logging level (default: {defaults.log_level})"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"knockserver {__version__}"
    )

    args = parser.parse_args(argv)

    config = ServerConfig(
        host=args.host,
        port=args.port,
        backlog=args.backlog,
        log_level=args.log_level,
    )

    try:
        server = KnockKnockServer(config)
        server.run()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ListenerError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    return 0


if __name__ == "__main__":
    sys.exit(main())
