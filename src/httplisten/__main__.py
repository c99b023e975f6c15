"""
=============================================================================
HTTPLISTEN CLI ENTRY POINT
=============================================================================

Runs a "Hello world!" server, mostly useful for smoke tests and load
testing the listener itself.

=============================================================================
USAGE
=============================================================================

    # Run with defaults (0.0.0.0:8000)
    python -m httplisten

    # Custom port
    python -m httplisten --port 3000

    # HTTPS (default port 8443)
    python -m httplisten --cert-file cert.pem --key-file key.pem

    # Same thing from the environment
    HTTP_PORT=3000 HTTP_LOG_LEVEL=DEBUG python -m httplisten

Ctrl+C (SIGINT) or SIGTERM closes the server and the process exits.

=============================================================================
"""

import argparse
import asyncio
import logging
import signal
import sys

from . import __version__
from .config import ServerConfig
from .errors import TlsConfigMissing
from .http.response import ok
from .server import serve, serve_tls


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="httplisten",
        description="asyncio HTTP/1.1 listener server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m httplisten                                  # 0.0.0.0:8000
  python -m httplisten --port 3000                      # Custom port
  python -m httplisten --host 127.0.0.1                 # Loopback only
  python -m httplisten --cert-file c.pem --key-file k.pem   # HTTPS on 8443
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0, or $HTTP_HOST)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8000, 8443 with TLS, or $HTTP_PORT)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--cert-file", default=None, help="TLS certificate chain (PEM)")
    parser.add_argument("--key-file", default=None, help="TLS private key (PEM)")

    # ─────────────────────────────────────────────────────────────────────
    # OUTPUT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Don't print the 'Listening on ...' message"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO, or $HTTP_LOG_LEVEL)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"httplisten {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Command-line arguments layered over the environment."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.hostname = args.host
    if args.port is not None:
        config.port = args.port
    if args.cert_file is not None:
        config.cert_file = args.cert_file
    if args.key_file is not None:
        config.key_file = args.key_file
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.quiet:
        config.quiet = True

    config.validate()
    return config


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def hello_world(request, conn_info):
    logger.debug("Responding with Hello world!")
    return ok("Hello world!")


async def _run(config: ServerConfig) -> None:
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:
            pass  # Windows: Ctrl+C arrives as KeyboardInterrupt instead

    if config.tls_enabled:
        await serve_tls(hello_world, signal=stop, config=config)
    else:
        await serve(hello_world, signal=stop, config=config)


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level)

    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except (TlsConfigMissing, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


# =============================================================================
# ENTRY POINT
# =============================================================================
# This allows running: python -m httplisten

if __name__ == "__main__":
    main()
