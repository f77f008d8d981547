"""
=============================================================================
FIXTURE SERVER CLI ENTRY POINT
=============================================================================

    # Defaults: http on 3000, https on 3001, keystore ./https.pfx
    python -m fixtureserver

    # Other ports / keystore
    python -m fixtureserver --http-port 4000 --https-port 4001 --pfx certs/test.pfx

    # Installed console script
    fixture-server --log-level DEBUG

Settings are layered: defaults < FIXTURE_* environment variables < flags.

=============================================================================
EXIT STATUS
=============================================================================

    0   GET /done was served, or SIGINT/SIGTERM
    1   startup failed (bad keystore, port in use, bad config); the reason
        is printed to stderr

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .exceptions import StartupError
from .server import create_app


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fixture-server",
        description="HTTP/HTTPS fixture server for exercising HTTP clients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Routes (identical on both ports):
  GET  /done         200, then the server exits with status 0
  GET  /basic_get    200 "success"
  POST /basic_post   200 {"headers": {...}, "bodyLength": N}
  POST /basic_409    409
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help="Address to bind (default: all interfaces)"
    )

    parser.add_argument(
        "--http-port",
        type=int,
        default=defaults.http_port,
        help=f"Plaintext port (default: {defaults.http_port}, 0 = any free port)"
    )

    parser.add_argument(
        "--https-port",
        type=int,
        default=defaults.https_port,
        help=f"TLS port (default: {defaults.https_port}, 0 = any free port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--pfx",
        default=defaults.pfx_path,
        help=f"PKCS#12 keystore with key and certificate (default: {defaults.pfx_path})"
    )

    parser.add_argument(
        "--passphrase",
        default=defaults.pfx_passphrase,
        help="Keystore passphrase (default: empty)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"fixture-server {__version__}"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the server, and return the exit status."""
    try:
        defaults = ServerConfig.from_env()
    except ValueError as e:
        print(f"Error: invalid environment: {e}", file=sys.stderr)
        return 1

    args = build_parser(defaults).parse_args(argv)

    config = defaults
    config.host = args.host
    config.http_port = args.http_port
    config.https_port = args.https_port
    config.pfx_path = args.pfx
    config.pfx_passphrase = args.passphrase
    config.log_level = args.log_level

    server = create_app(config)

    try:
        return server.run()
    except (StartupError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
